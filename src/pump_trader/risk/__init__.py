"""Risk gate and daily volume tracking."""
