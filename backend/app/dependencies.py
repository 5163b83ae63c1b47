from dataclasses import dataclass

from fastapi import Depends, Header, Request

from app.auth.policy import PolicyCache
from app.auth.session_tokens import SessionTokenService
from app.bulk_decision.processor import BulkDecisionProcessor
from app.cases.service import CaseService
from app.cases.status_service import CaseStatusService
from app.config import settings
from app.database import get_db, get_session_factory  # noqa: F401
from app.errors import AuthenticationRequired, PermissionDenied
from app.validation.service import DocumentValidationService
from app.webhooks.dispatcher import WebhookDispatcher


@dataclass
class ClientIdentity:
    client_id: str
    # Set when the caller authenticated with an SDK session token for one case
    case_id: str | None = None


@dataclass
class Reviewer:
    reviewer_id: str
    role: str


def get_webhook_dispatcher(request: Request) -> WebhookDispatcher | None:
    return getattr(request.app.state, "webhook_dispatcher", None)


def get_notification_queue(request: Request):
    return getattr(request.app.state, "notification_queue", None)


def get_policy_cache(request: Request) -> PolicyCache:
    cache = getattr(request.app.state, "policy_cache", None)
    if cache is None:
        cache = PolicyCache(ttl_seconds=settings.policy_cache_ttl_seconds)
        request.app.state.policy_cache = cache
    return cache


def get_session_token_service() -> SessionTokenService:
    return SessionTokenService(settings)


def get_validation_service() -> DocumentValidationService:
    return DocumentValidationService(settings)


def get_case_status_service(
    dispatcher: WebhookDispatcher | None = Depends(get_webhook_dispatcher),
) -> CaseStatusService:
    return CaseStatusService(dispatcher)


def get_case_service(
    status_service: CaseStatusService = Depends(get_case_status_service),
) -> CaseService:
    return CaseService(settings, status_service)


def get_bulk_processor(
    session_factory=Depends(get_session_factory),
    queue=Depends(get_notification_queue),
) -> BulkDecisionProcessor:
    return BulkDecisionProcessor(settings, session_factory, queue)


async def get_current_client(
    x_client_id: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    tokens: SessionTokenService = Depends(get_session_token_service),
) -> ClientIdentity:
    """Client identity from the gateway's X-Client-Id header, or an SDK session token."""
    if x_client_id:
        return ClientIdentity(client_id=x_client_id)
    if authorization and authorization.lower().startswith("bearer "):
        claims = tokens.decode(authorization[7:].strip())
        return ClientIdentity(client_id=claims["clientId"], case_id=claims["sub"])
    raise AuthenticationRequired("Client identity is required")


def require_permission(permission: str):
    async def dependency(
        x_reviewer_id: str | None = Header(default=None),
        x_reviewer_role: str | None = Header(default=None),
        policies: PolicyCache = Depends(get_policy_cache),
    ) -> Reviewer:
        if not x_reviewer_id or not x_reviewer_role:
            raise AuthenticationRequired("Reviewer identity is required")
        if not await policies.is_allowed(x_reviewer_role, permission):
            raise PermissionDenied(f"Role '{x_reviewer_role}' lacks permission '{permission}'")
        return Reviewer(reviewer_id=x_reviewer_id, role=x_reviewer_role)

    return dependency
