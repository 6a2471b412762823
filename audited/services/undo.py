"""
Undo: applies the inverse of a single audit to the live records.

- create  -> delete the record that was created
- destroy -> recreate the record from its pre-destroy snapshot
- update  -> write the old value of every changed field back

Undo does not write an audit itself. If the record's class is audited, the
flush that applies the undo is audited like any other change.
"""
from typing import Optional

from sqlalchemy.orm import Session

from audited.errors import InvalidActionError, NotFoundError
from audited.models.attributes import decode_attributes
from audited.models.audit import Audit
from audited.models.enums import AuditAction
from audited.observability import get_logger
from audited.registry import AuditRegistry, default_registry

logger = get_logger(__name__)


class UndoEngine:
    """Reverts audited changes against live storage."""

    def __init__(self, db: Session, registry: Optional[AuditRegistry] = None):
        self.db = db
        self.registry = registry or default_registry

    def undo(self, audit: Audit):
        """Revert ``audit`` and commit. Returns the record that was touched."""
        if audit.action == AuditAction.CREATE:
            record = self._live(audit)
            self.db.delete(record)
        elif audit.action == AuditAction.DESTROY:
            cls = self.registry.resolve(audit.auditable_type)
            record = cls(**decode_attributes(cls, audit.audited_changes))
            self.db.add(record)
        elif audit.action == AuditAction.UPDATE:
            record = self._live(audit)
            for attr, value in decode_attributes(type(record), audit.old_attributes()).items():
                setattr(record, attr, value)
        else:
            raise InvalidActionError(audit.action)

        self.db.commit()
        logger.info(
            "audit_undone",
            auditable_type=audit.auditable_type,
            auditable_id=audit.auditable_id,
            action=audit.action,
            version=audit.version,
        )
        return record

    def _live(self, audit: Audit):
        record = self.registry.find(self.db, audit.auditable_type, audit.auditable_id)
        if record is None:
            raise NotFoundError(audit.auditable_type, audit.auditable_id)
        return record
