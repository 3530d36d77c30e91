"""Data models for fetch sessions."""
