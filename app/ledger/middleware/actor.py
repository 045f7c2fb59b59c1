from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.ledger.core.context import build_request_context
from app.ledger.core.security import decode_token


class ActorContextMiddleware(BaseHTTPMiddleware):
    """Best-effort actor attribution for request logs; authorization happens in the dependencies."""

    async def dispatch(self, request: Request, call_next):
        request.state.actor_id = None
        request.state.role = None

        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.lower().startswith("bearer "):
            token = auth_header.split(" ", 1)[1]
            try:
                payload = decode_token(token)
            except JWTError:
                payload = {}
            request.state.actor_id = payload.get("sub")
            request.state.role = payload.get("role")

        request.state.context = build_request_context(
            actor_id=request.state.actor_id,
            role=request.state.role,
            trace_id=getattr(request.state, "trace_id", ""),
        )

        return await call_next(request)
