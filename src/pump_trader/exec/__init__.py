"""Trade execution backends."""
