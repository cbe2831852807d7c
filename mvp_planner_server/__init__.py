"""MVP planner server: plan generation and image lookup over rotating provider keys."""

__version__ = "1.0.0"
