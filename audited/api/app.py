"""FastAPI application factory."""
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from sqlalchemy.orm import sessionmaker

from audited.api.middleware import AuditRequestMiddleware
from audited.api.routes import router
from audited.services.auditor import Auditor

AUDIT_USER_HEADER = "X-Audit-User"


def header_user(request: Request) -> Optional[str]:
    """Display name of the acting user, taken from the X-Audit-User header."""
    return request.headers.get(AUDIT_USER_HEADER)


def create_app(
    session_factory: sessionmaker,
    user_resolver: Optional[Callable[[Request], Any]] = header_user,
    auditor: Optional[Auditor] = None,
) -> FastAPI:
    """Build the API around ``session_factory`` and audit its sessions."""
    (auditor or Auditor()).install(session_factory)

    app = FastAPI(
        title="Audited - Change Audit Trail",
        description="Versioned audit trail with point-in-time revisions and undo.",
        version="0.1.0"
    )
    app.state.session_factory = session_factory
    app.add_middleware(AuditRequestMiddleware, user_resolver=user_resolver)
    app.include_router(router, prefix="/api", tags=["audits"])

    # Health check
    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "audited"}

    return app
