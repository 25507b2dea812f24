"""Group gathering planner: event lifecycle and group decision engine."""

__version__ = "0.1.0"
