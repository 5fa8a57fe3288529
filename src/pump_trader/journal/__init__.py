"""Append-only cycle journal."""
