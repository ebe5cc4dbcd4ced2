"""Guards applied before any ticket state change."""

from .consistency import ConsistencyCheck, digests_match
from .engine import ValidationEngine

__all__ = ["ConsistencyCheck", "ValidationEngine", "digests_match"]
