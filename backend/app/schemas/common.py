"""Shared response pieces: camelCase wire models and the meta block."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResponseMeta(CamelModel):
    request_id: str | None = None
    timestamp: datetime
    idempotent: bool | None = None
    bulk_operation_id: str | None = None


class ErrorBody(CamelModel):
    code: str
    message: str
    details: list | dict | None = None


class ErrorResponse(CamelModel):
    error: ErrorBody
    meta: ResponseMeta
