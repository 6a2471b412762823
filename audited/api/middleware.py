"""Request metadata capture for audits written while serving a request."""
import functools
import uuid
from typing import Any, Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from audited.services.context import current_user_provider, request_context

REQUEST_ID_HEADER = "X-Request-ID"


class AuditRequestMiddleware(BaseHTTPMiddleware):
    """
    Runs every request inside ``request_context`` so audits pick up the request
    id and the client address.

    ``user_resolver`` (request -> actor) becomes the ambient current user for
    the request; explicit ``as_user`` scopes still take precedence.
    """

    def __init__(self, app, user_resolver: Optional[Callable[[Request], Any]] = None):
        super().__init__(app)
        self.user_resolver = user_resolver

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        remote_address = request.client.host if request.client else None

        provider = None
        if self.user_resolver is not None:
            provider = functools.partial(self.user_resolver, request)

        with request_context(request_uuid=request_id, remote_address=remote_address):
            with current_user_provider(provider):
                response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
