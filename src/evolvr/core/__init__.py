"""
Core infrastructure for Evolvr: configuration, logging, events and the
infrastructure exception hierarchy.
"""
