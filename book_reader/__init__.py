"""Virtualized reader for long plain-text books."""
