"""Reactgate test suite."""
