"""API routes over the audit trail."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from audited.errors import InvalidActionError, NotFoundError, UnknownTypeError
from audited.models.attributes import encode_value
from audited.models.audit import Audit
from audited.registry import default_registry
from audited.api.schemas import (
    AuditResponse,
    AuditedClassesResponse,
    ErrorResponse,
    RevisionResponse,
    UndoResponse,
)

router = APIRouter()


def get_db(request: Request):
    """Dependency for endpoints to get a database session from the app's factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def _get_audit(db: Session, audit_id: str) -> Audit:
    audit = db.get(Audit, audit_id)
    if not audit:
        raise HTTPException(status_code=404, detail="Audit not found")
    return audit


# Trail endpoints
@router.get("/trails/{auditable_type}/{auditable_id}", response_model=List[AuditResponse])
def list_audits(
    auditable_type: str,
    auditable_id: str,
    up_to_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """All audits for one record, oldest version first."""
    return Audit.for_auditable(db, auditable_type, auditable_id, up_to_version=up_to_version)


@router.get("/trails/{auditable_type}/{auditable_id}/latest", response_model=AuditResponse)
def latest_audit(auditable_type: str, auditable_id: str, db: Session = Depends(get_db)):
    audit = Audit.latest_for(db, auditable_type, auditable_id)
    if not audit:
        raise HTTPException(status_code=404, detail="No audits for this record")
    return audit


# Single audit endpoints
@router.get("/audits/{audit_id}", response_model=AuditResponse)
def get_audit(audit_id: str, db: Session = Depends(get_db)):
    return _get_audit(db, audit_id)


@router.get("/audits/{audit_id}/revision", response_model=RevisionResponse, responses={
    404: {"model": ErrorResponse, "description": "Audit or audited type unknown"}
})
def get_revision(audit_id: str, db: Session = Depends(get_db)):
    """
    The audited record as it was at this audit.
    For a destroyed record, persisted is False.
    """
    audit = _get_audit(db, audit_id)
    try:
        revision = audit.revision()
    except UnknownTypeError as e:
        raise HTTPException(status_code=404, detail={"message": e.message})

    attributes = {
        prop.key: encode_value(getattr(revision, prop.key))
        for prop in inspect(type(revision)).column_attrs
    }
    return RevisionResponse(
        auditable_type=audit.auditable_type,
        auditable_id=audit.auditable_id,
        version=audit.version,
        persisted=inspect(revision).has_identity,
        attributes=attributes,
    )


@router.post("/audits/{audit_id}/undo", response_model=UndoResponse, responses={
    404: {"model": ErrorResponse, "description": "Audited record no longer exists"},
    422: {"model": ErrorResponse, "description": "Audit action cannot be undone"},
})
def undo_audit(audit_id: str, db: Session = Depends(get_db)):
    """
    Revert the change recorded by this audit.
    The revert is itself audited if the record's class is audited.
    """
    audit = _get_audit(db, audit_id)
    response = UndoResponse(
        audit_id=audit.id,
        auditable_type=audit.auditable_type,
        auditable_id=audit.auditable_id,
        undone_action=audit.action,
    )
    try:
        audit.undo()
    except (NotFoundError, UnknownTypeError) as e:
        raise HTTPException(status_code=404, detail={"message": e.message})
    except InvalidActionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": e.message, "action": e.action},
        )
    return response


@router.get("/audited-classes", response_model=AuditedClassesResponse)
def list_audited_classes():
    return AuditedClassesResponse(audited_classes=default_registry.audited_class_names)
