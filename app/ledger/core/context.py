from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    actor_id: str | None
    role: str | None
    trace_id: str


def build_request_context(*, actor_id: str | None, role: str | None, trace_id: str) -> RequestContext:
    return RequestContext(actor_id=actor_id, role=role, trace_id=trace_id)


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, "context", None)
    if isinstance(context, RequestContext):
        return context
    return build_request_context(
        actor_id=getattr(request.state, "actor_id", None),
        role=getattr(request.state, "role", None),
        trace_id=getattr(request.state, "trace_id", ""),
    )
