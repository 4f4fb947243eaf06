"""Tickets and reaction classification."""
