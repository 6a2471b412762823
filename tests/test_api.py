"""
Tests for the HTTP surface over the audit trail.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from audited.api.app import create_app
from audited.database import Base, make_engine, make_session_factory
from audited.models.audit import Audit
from fixture_app import User


@pytest.fixture
def api_session_factory():
    # One shared connection so the app's worker threads see the same database
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def client(api_session_factory):
    app = create_app(api_session_factory)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def api_user(api_session_factory, client):
    session = api_session_factory()
    user = User(name="John")
    session.add(user)
    session.commit()
    user.name = "Joe"
    session.commit()
    user_id = user.id
    session.close()
    return user_id


class TestTrail:

    def test_list(self, client, api_user):
        response = client.get(f"/api/trails/User/{api_user}")

        assert response.status_code == 200
        body = response.json()
        assert [a["version"] for a in body] == [1, 2]
        assert body[1]["audited_changes"] == {"name": ["John", "Joe"]}

    def test_list_up_to_version(self, client, api_user):
        response = client.get(f"/api/trails/User/{api_user}", params={"up_to_version": 1})
        assert [a["action"] for a in response.json()] == ["create"]

    def test_latest(self, client, api_user):
        response = client.get(f"/api/trails/User/{api_user}/latest")

        assert response.status_code == 200
        assert response.json()["version"] == 2

    def test_latest_without_audits(self, client):
        response = client.get("/api/trails/User/999/latest")
        assert response.status_code == 404


class TestRevision:

    def test_revision_of_live_record(self, client, api_user):
        first = client.get(f"/api/trails/User/{api_user}").json()[0]

        response = client.get(f"/api/audits/{first['id']}/revision")

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == 1
        assert body["persisted"] is True
        assert body["attributes"]["name"] == "John"

    def test_revision_of_destroyed_record(self, client, api_user, api_session_factory):
        session = api_session_factory()
        session.delete(session.get(User, api_user))
        session.commit()
        session.close()
        latest = client.get(f"/api/trails/User/{api_user}/latest").json()

        body = client.get(f"/api/audits/{latest['id']}/revision").json()

        assert body["persisted"] is False
        assert body["attributes"]["name"] == "Joe"

    def test_unknown_audit(self, client):
        assert client.get("/api/audits/nope/revision").status_code == 404


class TestUndo:

    def test_undo_stamps_request_metadata(self, client, api_user):
        latest = client.get(f"/api/trails/User/{api_user}/latest").json()

        response = client.post(
            f"/api/audits/{latest['id']}/undo",
            headers={"X-Request-ID": "req-42", "X-Audit-User": "alice"},
        )

        assert response.status_code == 200
        assert response.json()["undone_action"] == "update"
        assert response.headers["X-Request-ID"] == "req-42"

        revert = client.get(f"/api/trails/User/{api_user}/latest").json()
        assert revert["version"] == 3
        assert revert["audited_changes"] == {"name": ["Joe", "John"]}
        assert revert["request_uuid"] == "req-42"
        assert revert["username"] == "alice"
        assert revert["remote_address"] == "testclient"

    def test_undo_invalid_action(self, client, api_user, api_session_factory):
        session = api_session_factory()
        audit = Audit.latest_for(session, "User", api_user)
        audit.action = "oops"
        session.commit()
        audit_id = audit.id
        session.close()

        response = client.post(f"/api/audits/{audit_id}/undo")

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "invalid action given oops"

    def test_undo_create_of_deleted_record(self, client, api_user, api_session_factory):
        first = client.get(f"/api/trails/User/{api_user}").json()[0]
        session = api_session_factory()
        session.delete(session.get(User, api_user))
        session.commit()
        session.close()

        response = client.post(f"/api/audits/{first['id']}/undo")

        assert response.status_code == 404


def test_audited_classes(client):
    response = client.get("/api/audited-classes")
    assert "User" in response.json()["audited_classes"]
    assert "Company" in response.json()["audited_classes"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "audited"}


def test_request_id_is_generated(client):
    response = client.get("/health")
    assert response.headers["X-Request-ID"]
