"""Crashline: a perpetual crash-game round engine with a FastAPI front."""

__version__ = "0.1.0"
