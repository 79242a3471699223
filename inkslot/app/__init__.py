"""Application package for the inkslot booking engine."""

from .core import db
from .domain import models

__all__ = ["db", "models"]
