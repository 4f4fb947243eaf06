"""Correlation, notification and discharge services."""
