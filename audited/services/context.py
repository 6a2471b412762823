"""
Attribution context: who is acting right now, and on behalf of which request.

Every value lives in a ``ContextVar``, so each thread and each asyncio task
sees only its own scope. Scopes are entered with context managers and reset
with the token they were entered with, on every exit path.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator, Optional

import structlog

from audited.observability import get_logger

logger = get_logger(__name__)

_audited_user: ContextVar[Any] = ContextVar("audited_user", default=None)
_current_user_provider: ContextVar[Optional[Callable[[], Any]]] = ContextVar(
    "current_user_provider", default=None
)
_request_uuid: ContextVar[Optional[str]] = ContextVar("request_uuid", default=None)
_remote_address: ContextVar[Optional[str]] = ContextVar("remote_address", default=None)


def _describe(actor) -> str:
    if actor is None or isinstance(actor, str):
        return repr(actor)
    return f"{type(actor).__name__}:{getattr(actor, 'id', None)}"


@contextmanager
def as_user(actor) -> Iterator[Any]:
    """Attribute every audit created inside the block to ``actor``.

    Nested blocks shadow outer ones; the outer actor (possibly None) is back
    in place as soon as the block exits, whether or not it raised.
    """
    token = _audited_user.set(actor)
    logger.debug("audit_scope_entered", actor=_describe(actor))
    try:
        yield actor
    finally:
        _audited_user.reset(token)
        logger.debug("audit_scope_exited", actor=_describe(actor))


def run_as(actor, body: Callable[..., Any], *args, **kwargs) -> Any:
    """Call ``body`` attributed to ``actor`` and return its result."""
    with as_user(actor):
        return body(*args, **kwargs)


def audited_user():
    """The innermost ``as_user`` actor, ignoring the ambient provider."""
    return _audited_user.get()


def current_actor():
    """The innermost explicit actor, else the ambient current user, else None."""
    actor = _audited_user.get()
    if actor is not None:
        return actor
    provider = _current_user_provider.get()
    if provider is not None:
        return provider()
    return None


def set_current_user_provider(provider: Optional[Callable[[], Any]]):
    """Install the zero-argument ambient current-user callable.

    Returns the token needed to undo the change with
    ``reset_current_user_provider``.
    """
    return _current_user_provider.set(provider)


def reset_current_user_provider(token) -> None:
    _current_user_provider.reset(token)


@contextmanager
def current_user_provider(provider: Optional[Callable[[], Any]]) -> Iterator[None]:
    token = _current_user_provider.set(provider)
    try:
        yield
    finally:
        _current_user_provider.reset(token)


@contextmanager
def request_context(
    request_uuid: Optional[str] = None,
    remote_address: Optional[str] = None,
) -> Iterator[None]:
    """Make request metadata available to audits created inside the block."""
    uuid_token = _request_uuid.set(request_uuid)
    address_token = _remote_address.set(remote_address)
    try:
        with structlog.contextvars.bound_contextvars(request_id=request_uuid):
            yield
    finally:
        _remote_address.reset(address_token)
        _request_uuid.reset(uuid_token)


def current_request_uuid() -> Optional[str]:
    return _request_uuid.get()


def current_remote_address() -> Optional[str]:
    return _remote_address.get()
