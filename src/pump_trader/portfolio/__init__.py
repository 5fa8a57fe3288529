"""Position ledger and portfolio persistence."""
