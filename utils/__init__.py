"""Shared helpers: validation, time handling, address resolution."""
