"""
Tests for the registry of audited and resolvable types.
"""
import threading

import pytest
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import declarative_base
from audited.errors import UnknownTypeError
from audited.registry import AuditRegistry, audited, coerce_identity, default_registry, type_tag
from fixture_app import Company, Membership, TablelessUser, User

LocalBase = declarative_base()


class Widget(LocalBase):
    __tablename__ = "widgets"
    __audit_type__ = "Gadget::Widget"

    id = Column(Integer, primary_key=True)
    name = Column(String)
    color = Column(String)
    created_at = Column(String)


class TestDefaultRegistry:

    def test_includes_audited_classes(self):
        assert User in default_registry.audited_classes
        assert Company in default_registry.audited_classes

    def test_registered_actor_is_resolvable_but_not_audited(self):
        assert TablelessUser not in default_registry.audited_classes
        assert default_registry.resolve("TablelessUser") is TablelessUser

    def test_unknown_type(self):
        with pytest.raises(UnknownTypeError):
            default_registry.resolve("Nope")

    def test_default_ignored_columns(self):
        columns = default_registry.options_for(User).audited_columns
        assert "id" not in columns
        assert "created_at" not in columns
        assert "updated_at" not in columns
        assert "password" not in columns
        assert columns[0] == "name"


class TestAuditRegistry:

    def test_decorator_with_options(self):
        registry = AuditRegistry()
        audited(Widget, only=["name"], registry=registry)

        assert registry.audited_classes == [Widget]
        assert registry.options_for(Widget).audited_columns == ("name",)
        assert registry.resolve("Gadget::Widget") is Widget

    def test_decorator_form(self):
        registry = AuditRegistry()
        decorate = audited(except_=["color"], registry=registry)

        assert decorate(Widget) is Widget
        assert registry.options_for(Widget).audited_columns == ("name",)

    def test_type_tag(self):
        assert type_tag(Widget) == "Gadget::Widget"
        assert type_tag(User) == "User"

    def test_concurrent_registration(self):
        registry = AuditRegistry()
        classes = [type(f"Actor{i}", (), {}) for i in range(50)]

        threads = [threading.Thread(target=registry.register, args=(cls,)) for cls in classes]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for cls in classes:
            assert registry.resolve(cls.__name__) is cls
        assert registry.audited_classes == []

    def test_coerce_identity(self):
        assert coerce_identity(User, "12") == 12
        assert coerce_identity(User, 12) == 12
        assert coerce_identity(User, None) is None


class TestCompositeKeys:

    @pytest.fixture
    def membership(self, db_session, user):
        company = Company(name="Keyed Auditors")
        db_session.add(company)
        db_session.commit()
        membership = Membership(user_id=user.id, company_id=company.id, role="member")
        db_session.add(membership)
        db_session.commit()
        return membership

    def test_identity_is_comma_joined(self, membership):
        audit = membership.audits[0]

        assert audit.auditable_id == f"{membership.user_id},{membership.company_id}"
        assert audit.audited_changes == {"role": "member"}

    def test_coerce_identity(self):
        assert coerce_identity(Membership, "1,2") == (1, 2)
        assert coerce_identity(Membership, (1, "2")) == (1, 2)
        with pytest.raises(ValueError):
            coerce_identity(Membership, "1")

    def test_find(self, db_session, membership):
        stored_id = f"{membership.user_id},{membership.company_id}"
        found = default_registry.find(db_session, "Membership", stored_id)

        assert found is membership

    def test_auditable_revision_and_undo(self, db_session, membership):
        membership.role = "owner"
        db_session.commit()
        created, updated = membership.audits

        assert created.auditable is membership
        assert created.revision().role == "member"
        assert membership.role == "owner"

        updated.undo()
        db_session.refresh(membership)

        assert membership.role == "member"
        assert [a.version for a in membership.audits] == [1, 2, 3]
