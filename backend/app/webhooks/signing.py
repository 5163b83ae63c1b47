"""HMAC-SHA256 webhook signatures over "{unix_timestamp}.{body}"."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: str, timestamp: int, secret: str) -> str:
    message = f"{timestamp}.{body}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signature_header(body: str, timestamp: int, secret: str) -> str:
    return SIGNATURE_PREFIX + compute_signature(body, timestamp, secret)


def verify_signature(body: str, timestamp: int, secret: str, header: str) -> bool:
    """Receiver-side check, constant time."""
    return hmac.compare_digest(signature_header(body, timestamp, secret), header)
