"""Domain layer: value objects shared by every module."""
