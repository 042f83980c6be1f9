"""
Domain: request actors (pure).

Each actor is bound to zero or one location. Authentication itself happens
upstream; the core only consumes the resolved identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Actor:
    """
    Authenticated user performing a request.

    location_id is None for administrative users (may act anywhere).
    """

    user_id: str
    location_id: Optional[str] = None
    can_override_price: bool = False

    @property
    def is_administrative(self) -> bool:
        return self.location_id is None


__all__ = ["Actor"]
