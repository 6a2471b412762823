"""
Tests for undo: each audited action is inverted against the live records.
"""
import pytest
from audited.errors import InvalidActionError, NotFoundError
from audited.models.audit import Audit
from audited.services.undo import UndoEngine
from fixture_app import User


@pytest.fixture
def john(db_session):
    john = User(name="John")
    db_session.add(john)
    db_session.commit()
    return john


class TestUndo:

    def test_undoes_changes(self, db_session, john):
        john.name = "Joe"
        db_session.commit()

        john.audits[-1].undo()
        db_session.refresh(john)

        assert john.name == "John"

    def test_undoes_destroy(self, db_session, john):
        john_id = john.id
        db_session.delete(john)
        db_session.commit()

        Audit.latest_for(db_session, "User", john_id).undo()

        restored = db_session.query(User).filter(User.name == "John").one()
        assert restored.name == "John"

    def test_undoes_creation(self, db_session, john):
        before = db_session.query(User).count()

        john.audits[-1].undo()

        assert db_session.query(User).count() == before - 1

    def test_fails_on_unknown_action(self, db_session, john):
        audit = john.audits[-1]
        audit.action = "oops"

        with pytest.raises(InvalidActionError, match="invalid action given oops") as exc_info:
            audit.undo()

        assert exc_info.value.action == "oops"

    def test_fails_when_created_record_is_gone(self, db_session, john):
        create = john.audits[0]
        db_session.delete(john)
        db_session.commit()

        with pytest.raises(NotFoundError):
            create.undo()

    def test_undo_is_audited_like_any_change(self, db_session, john):
        john.name = "Joe"
        db_session.commit()

        john.audits[-1].undo()

        latest = john.audits[-1]
        assert latest.version == 3
        assert latest.action == "update"
        assert latest.audited_changes == {"name": ["Joe", "John"]}

    def test_undo_restores_typed_values(self, db_session, john):
        john.logins = 4
        db_session.commit()
        john.logins = 9
        db_session.commit()

        UndoEngine(db_session).undo(john.audits[-1])
        db_session.refresh(john)

        assert john.logins == 4
