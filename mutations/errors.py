"""
Engine error taxonomy.

Every failure leaving the engine is an ``EngineError`` whose ``category`` is one
of ``validation``, ``not-found``, ``conflict`` or ``internal``. The HTTP layer
maps ``status_code`` straight onto the response.
"""

from typing import Any, Dict, List, Optional


class EngineError(Exception):
    """Base class for failures reported by the board mutation engine."""

    category: str = "internal"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "category": self.category}
        if self.entity is not None:
            payload["entity"] = self.entity
        if self.entity_id is not None:
            payload["entity_id"] = self.entity_id
        if self.details is not None:
            payload["details"] = self.details
        return payload


class PatchValidationError(EngineError):
    """Malformed patch: unknown op, missing or mistyped field, bad enum or color."""

    category = "validation"
    status_code = 400

    def __init__(self, issues: List[Dict[str, str]], message: str = "Patch validation failed", **kwargs):
        self.issues = issues
        super().__init__(message, details={"issues": issues}, **kwargs)

    @classmethod
    def single(cls, path: str, reason: str, **kwargs) -> "PatchValidationError":
        return cls([{"path": path, "reason": reason}], message=f"{path}: {reason}", **kwargs)


class EntityNotFoundError(EngineError):
    """A referenced board, column, card, label, comment or attachment does not exist."""

    category = "not-found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        message = f"{entity} with ID {entity_id} not found" if entity_id else f"{entity} not found"
        super().__init__(message, entity=entity, entity_id=entity_id)


class WriteConflictError(EngineError):
    """The store detected a concurrent modification of the data this request read."""

    category = "conflict"
    status_code = 409

    def __init__(self, message: str = "Concurrent update detected, try again", *, attempts: int = 1, **kwargs):
        self.attempts = attempts
        super().__init__(message, **kwargs)


class InternalEngineError(EngineError):
    """Unexpected persistence failure; the transaction was rolled back."""


class TransactionTimeoutError(InternalEngineError):
    """The transaction exceeded its wall-clock budget and was aborted."""
