"""Per-record accessors for audited models."""
from datetime import datetime
from typing import List

from sqlalchemy.orm import object_session

from audited.models.attributes import copy_columns
from audited.models.audit import Audit
from audited.registry import record_identity, type_tag
from audited.services.reconstructor import RevisionReconstructor


class AuditedMixin:
    """
    Mix into a mapped class that is registered with ``audited``.

    ``audit_comment`` is copied onto the next audit written for the record and
    then cleared. ``audit_version`` is only set on reconstructed revisions.
    """
    audit_comment = None
    audit_version = None

    @property
    def audits(self) -> List[Audit]:
        """This record's audit trail, oldest first."""
        return Audit.for_auditable(object_session(self), type_tag(type(self)), record_identity(self))

    def revision(self, version: int):
        trail = Audit.for_auditable(
            object_session(self), type_tag(type(self)), record_identity(self), up_to_version=version
        )
        if not trail:
            return None
        return trail[-1].revision()

    def revision_at(self, moment: datetime):
        return RevisionReconstructor(object_session(self)).revision_at(
            type_tag(type(self)), record_identity(self), moment
        )

    @property
    def frozen(self) -> bool:
        return self.__dict__.get("_audited_frozen", False)

    def freeze(self):
        """Refuse further assignment of mapped attributes on this instance."""
        self._audited_frozen = True
        return self

    def dup(self):
        """Unfrozen, unsaved copy of this record without its primary key."""
        return copy_columns(self)
