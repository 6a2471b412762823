"""Errors raised by the auditing core.

Everything here is a programmer or data-integrity error. None of it is
retried; callers decide what to do.
"""


class AuditedError(Exception):
    """Base class for all auditing errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidActionError(AuditedError):
    """Undo was asked to invert an audit whose action it does not know."""
    def __init__(self, action):
        self.action = action
        super().__init__(f"invalid action given {action}")


class NotFoundError(AuditedError):
    """A live record referenced by an audit no longer exists."""
    def __init__(self, type_tag: str, record_id):
        self.type_tag = type_tag
        self.record_id = record_id
        super().__init__(f"{type_tag} with id {record_id} not found")


class UnknownTypeError(AuditedError):
    """A stored type tag has no class registered for it."""
    def __init__(self, type_tag: str):
        self.type_tag = type_tag
        super().__init__(f"no class registered for type {type_tag!r}")


class FrozenRecordError(AuditedError):
    """A mapped attribute was assigned on a frozen record."""
    def __init__(self, record, attribute: str):
        self.attribute = attribute
        super().__init__(
            f"can't modify frozen {type(record).__name__}: {attribute}"
        )


class DetachedAuditError(AuditedError):
    """A record an audit refers to was read while the audit has no session."""
    def __init__(self, audit, reference: str):
        self.audit = audit
        self.reference = reference
        super().__init__(f"can't load {reference} of {audit!r}: audit is not attached to a session")
