"""Domain package: persisted models and the interval value type."""

from . import intervals, models  # noqa: F401

__all__ = ["intervals", "models"]
