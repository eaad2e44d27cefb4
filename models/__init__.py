"""Data models for visitor events and aggregate statistics."""
