"""Shared helpers with no dependency on features."""
