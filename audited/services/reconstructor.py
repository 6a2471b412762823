"""
Rebuilds what an audited record looked like as of a given audit.

The audit trail is folded oldest first onto a starting record: a detached
copy of the live row when it still exists, otherwise a new, unsaved instance.
The result is a best-effort snapshot. It has not been validated and should
not be saved without the caller deciding to.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, make_transient_to_detached

from audited.models.attributes import (
    assign_revision_attributes,
    copy_columns,
    reconstruct_attributes,
)
from audited.models.audit import Audit
from audited.observability import get_logger
from audited.registry import AuditRegistry, default_registry

logger = get_logger(__name__)


class RevisionReconstructor:
    """Point-in-time state of audited records, computed from their audits."""

    def __init__(self, db: Session, registry: Optional[AuditRegistry] = None):
        self.db = db
        self.registry = registry or default_registry

    def ancestors_of(self, auditable_type: str, auditable_id, up_to_version: int) -> List[Audit]:
        return Audit.for_auditable(self.db, auditable_type, auditable_id, up_to_version=up_to_version)

    def ancestors(self, audit: Audit) -> List[Audit]:
        return self.ancestors_of(audit.auditable_type, audit.auditable_id, audit.version)

    def revision(self, audit: Audit):
        """The auditable record as of ``audit``, with ``audit_version`` set."""
        target = self._starting_point(audit.auditable_type, audit.auditable_id)
        attributes = reconstruct_attributes(self.ancestors(audit))
        attributes["audit_version"] = audit.version
        revision = assign_revision_attributes(target, attributes)
        logger.debug(
            "revision_reconstructed",
            auditable_type=audit.auditable_type,
            auditable_id=audit.auditable_id,
            version=audit.version,
        )
        return revision

    def revision_at(self, auditable_type: str, auditable_id, moment: datetime):
        """The record as of the newest audit created at or before ``moment``.

        Returns None when the record had no audits yet at that time.
        """
        audit = self.db.query(Audit).filter(
            Audit.auditable_type == auditable_type,
            Audit.auditable_id == str(auditable_id),
            Audit.created_at <= moment,
        ).order_by(Audit.version.desc()).first()
        if audit is None:
            return None
        return self.revision(audit)

    def _starting_point(self, auditable_type: str, auditable_id):
        cls = self.registry.resolve(auditable_type)
        live = self.registry.find(self.db, auditable_type, auditable_id)
        if live is None:
            return cls()
        # Never write history onto the session's own instance
        snapshot = copy_columns(live, include_primary_key=True)
        make_transient_to_detached(snapshot)
        return snapshot
