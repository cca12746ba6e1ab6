"""Service modules of the progression engine."""
