"""Helpers for the response envelope shared by every endpoint."""

from fastapi import Request

from app.models.base import utcnow
from app.schemas.common import ResponseMeta


def build_meta(request: Request, **extra) -> ResponseMeta:
    return ResponseMeta(
        request_id=getattr(request.state, "request_id", None),
        timestamp=utcnow(),
        **extra,
    )
