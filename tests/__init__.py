"""Evolvr test suite."""
