"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class AuditResponse(BaseModel):
    id: str
    auditable_type: str
    auditable_id: str
    associated_type: Optional[str]
    associated_id: Optional[str]
    user_id: Optional[str]
    user_type: Optional[str]
    username: Optional[str]
    user_attributes: Optional[Dict[str, Any]]
    action: str
    audited_changes: Dict[str, Any]
    version: int
    comment: Optional[str]
    remote_address: Optional[str]
    request_uuid: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class RevisionResponse(BaseModel):
    """A record as of one audit. ``persisted`` is False once it was destroyed."""
    auditable_type: str
    auditable_id: str
    version: int
    persisted: bool
    attributes: Dict[str, Any]


class UndoResponse(BaseModel):
    audit_id: str
    auditable_type: str
    auditable_id: str
    undone_action: str


class AuditedClassesResponse(BaseModel):
    audited_classes: List[str]


# Error response
class ErrorResponse(BaseModel):
    message: str
