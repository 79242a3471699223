"""Booking services.

``booking`` owns the write path, ``slots`` the public availability read path.
Both talk to persistence only through a ``store.ReservationStore``.
"""

from . import errors  # noqa: F401

__all__ = ["errors"]
