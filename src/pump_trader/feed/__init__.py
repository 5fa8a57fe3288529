"""Market event sources."""
