from __future__ import annotations

from typing import Optional


class PosError(Exception):
    """Base class for restaurant domain errors."""


class ValidationError(PosError):
    """Malformed input: unknown enum value, negative amount, missing field."""


class InvalidTransitionError(PosError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"invalid status transition: {current} -> {target}")


class PermissionDenied(PosError):
    def __init__(self, role: Optional[str], capability: str):
        self.role = role
        self.capability = capability
        super().__init__(f"role {role or '<none>'} lacks {capability}")


class StoreError(PosError):
    """
    A document store call was rejected. ``status`` is the upstream HTTP
    status, 0 when the request never got a response.
    """

    def __init__(self, message: str, status: int = 0, collection: Optional[str] = None):
        self.status = status
        self.collection = collection
        super().__init__(message)


class ReadFailure(StoreError):
    pass


class WriteFailure(StoreError):
    pass
