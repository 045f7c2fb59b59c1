import uuid

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError

from app.ledger.core.capabilities import Capability, require_capability
from app.ledger.core.context import RequestContext, build_request_context, get_request_context
from app.ledger.core.error_catalog import AppError, ErrorCatalog
from app.ledger.core.security import AUTHORIZER_TOKEN_HEADER, Actor, TokenData, bearer_scheme, decode_token


def _token_data_from_raw(token: str) -> TokenData:
    try:
        token_data = TokenData(**decode_token(token))
        uuid.UUID(token_data.sub)
        return token_data
    except (JWTError, ValidationError, TypeError, ValueError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def get_current_token_data(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenData:
    if credentials is None or not credentials.credentials:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    return _token_data_from_raw(credentials.credentials)


def require_request_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    context = build_request_context(
        actor_id=token_data.sub,
        role=token_data.role.value,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.context = context
    return context


def get_current_actor(
    token_data: TokenData = Depends(get_current_token_data),
    _context: RequestContext = Depends(require_request_context),
) -> Actor:
    return Actor.from_token_data(token_data)


def get_optional_authorizer(request: Request) -> Actor | None:
    """Second actor presenting their own token for inline authorizations."""
    raw = request.headers.get(AUTHORIZER_TOKEN_HEADER)
    if not raw:
        return None
    if raw.lower().startswith("bearer "):
        raw = raw.split(" ", 1)[1]
    return Actor.from_token_data(_token_data_from_raw(raw))


def require_actor_capability(capability: Capability):
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        require_capability(actor, capability)
        return actor

    return dependency


__all__ = [
    "get_current_token_data",
    "get_current_actor",
    "get_optional_authorizer",
    "require_actor_capability",
    "require_request_context",
    "get_request_context",
]
