"""
Evolvr progression & achievement engine.

Level curves and category aggregation, badge rule evaluation, and the
optimistic task-completion coordinator.
"""

__version__ = "1.0.0"
