import secrets
import string
from datetime import datetime, timezone

_ALPHABET = string.ascii_lowercase + string.digits


def id_generator(prefix: str, length: int):
    """Return a factory producing ids like ``card_x8f2k1q0zm``."""
    def generate() -> str:
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
        return f"{prefix}_{suffix}"
    return generate


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
