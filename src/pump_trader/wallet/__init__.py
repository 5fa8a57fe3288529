"""Wallet balance and holdings queries."""
