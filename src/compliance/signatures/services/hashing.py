"""
Hashing and token primitives for the signature ledger.

Everything here is a pure function over its arguments (plus the clock and the
OS random source for tokens and codes); nothing touches storage.
"""

import hashlib
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

HASH_DELIMITER = "-"
VERIFICATION_TOKEN_BYTES = 32
CODE_PREFIX = "VER"

_BASE36 = string.digits + string.ascii_uppercase


class HashingService:
    """SHA-256 helpers used for tamper evidence."""

    @staticmethod
    def content_hash(parts: Iterable[str]) -> str:
        """
        Hash an ordered sequence of strings.

        Parts are joined with HASH_DELIMITER and encoded as UTF-8 before
        hashing, so the same ordered input always yields the same digest.

        Returns:
            str: lowercase hexadecimal SHA-256 (64 chars)
        """
        payload = HASH_DELIMITER.join(str(part) for part in parts)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @staticmethod
    def signature_hash(document_id: str, collaborator_id: str, signer_name: str,
                       signer_email: str, timestamp: str) -> str:
        return HashingService.content_hash(
            [document_id, collaborator_id, signer_name, signer_email, timestamp]
        )

    @staticmethod
    def bytes_sha256(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()


def random_token(byte_length: int = VERIFICATION_TOKEN_BYTES) -> str:
    """Cryptographically secure random bytes, hex encoded (2 chars per byte)."""
    return secrets.token_hex(byte_length)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def verification_code(sequence_index: int, now_ms: Optional[int] = None) -> str:
    """
    Human-shareable code: VER-<time base36>-<5 random chars>-<index>.

    The index suffix makes codes unique inside one batch; the random part
    makes collisions across batches improbable.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    random_part = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{CODE_PREFIX}-{_to_base36(now_ms)}-{random_part}-{sequence_index}"


def signing_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC string with milliseconds, e.g. 2024-05-01T10:20:30.123Z.

    This exact string is persisted with the ledger entry so the content hash
    can be re-derived later.
    """
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_signing_timestamp(value: str) -> datetime:
    """Inverse of signing_timestamp, returned as naive UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)
