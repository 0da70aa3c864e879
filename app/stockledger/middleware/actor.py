from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.stockledger.core.context import build_request_context

ACTOR_HEADER = "X-Employee-ID"


class ActorContextMiddleware(BaseHTTPMiddleware):
    """Attach the acting employee (if any) to the request.

    Authentication happens upstream; the header is trusted as-is and only
    used to stamp ``performed_by`` and audit rows.
    """

    async def dispatch(self, request: Request, call_next):
        user_id = (request.headers.get(ACTOR_HEADER) or "").strip() or None
        request.state.user_id = user_id
        request.state.context = build_request_context(
            user_id=user_id,
            trace_id=getattr(request.state, "trace_id", ""),
        )
        return await call_next(request)
