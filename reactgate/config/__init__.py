"""Daemon configuration."""
