from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.platform.identity import InMemoryIdentityProvider, set_identity_provider
from app.platform.security.context import OrgRole


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()


@pytest.fixture()
def identity() -> InMemoryIdentityProvider:
    provider = InMemoryIdentityProvider()
    provider.add_member(
        "org-a",
        "u1",
        identifier="admin@a.com",
        role=OrgRole.ADMIN,
        organization_name="Org A",
        first_name="Ada",
        last_name="Admin",
    )
    provider.add_member("org-a", "u2", identifier="member@a.com")
    provider.add_member("org-b", "u3", identifier="admin@b.com", role=OrgRole.ADMIN)
    set_identity_provider(provider)
    return provider


@pytest.fixture()
def client(db_session: Session, identity: InMemoryIdentityProvider) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _headers(user_id: str, role: str, org_id: str = "org-a") -> dict[str, str]:
    token = jwt.encode(
        {"sub": user_id, "org_id": org_id, "org_role": role, "sid": "sess-1"},
        get_settings().session_jwt_key,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


ADMIN = _headers("u1", "org:admin")
MEMBER = _headers("u2", "org:member")


def test_members_lists_caller_organization(client: TestClient) -> None:
    response = client.get("/api/trpc/team.members", headers=MEMBER)

    assert response.status_code == 200
    members = response.json()
    assert [item["identifier"] for item in members] == ["admin@a.com", "member@a.com"]
    assert members[0]["full_name"] == "Ada Admin"
    assert members[0]["role"] == "admin"
    assert members[1]["full_name"] == "member@a.com"


def test_membership_list_alias(client: TestClient) -> None:
    primary = client.get("/api/trpc/team.members", headers=ADMIN)
    alias = client.get("/api/trpc/system.getMembershipList", headers=ADMIN)

    assert alias.status_code == 200
    assert alias.json() == primary.json()


def test_admin_updates_member_role(client: TestClient, identity: InMemoryIdentityProvider) -> None:
    response = client.post(
        "/api/trpc/team.updateMemberRole", json={"user_id": "u2", "role": "admin"}, headers=ADMIN
    )

    assert response.status_code == 200
    assert response.json()["role"] == "admin"
    membership = identity.get_membership("org-a", "u2")
    assert membership is not None
    assert membership.role == OrgRole.ADMIN

    changed = [entry for entry in events.published_events if entry["event_type"] == "team.member.role_updated"]
    assert changed[-1]["payload"] == {"user_id": "u2", "role": "admin"}
    assert audit.entries_for("team.membership", "u2")[-1]["action"] == "role_updated"


def test_member_cannot_manage_team(client: TestClient, identity: InMemoryIdentityProvider) -> None:
    response = client.post(
        "/api/trpc/team.updateMemberRole", json={"user_id": "u2", "role": "admin"}, headers=MEMBER
    )

    assert response.status_code == 403
    membership = identity.get_membership("org-a", "u2")
    assert membership is not None
    assert membership.role == OrgRole.BASIC_MEMBER

    assert client.post("/api/trpc/team.removeMember", json={"user_id": "u1"}, headers=MEMBER).status_code == 403


def test_admin_removes_member(client: TestClient, identity: InMemoryIdentityProvider) -> None:
    response = client.post("/api/trpc/team.removeMember", json={"user_id": "u2"}, headers=ADMIN)

    assert response.status_code == 200
    assert response.json() == {"user_id": "u2", "status": "removed"}
    assert identity.get_membership("org-a", "u2") is None


def test_admin_cannot_remove_self(client: TestClient, identity: InMemoryIdentityProvider) -> None:
    response = client.post("/api/trpc/team.removeMember", json={"user_id": "u1"}, headers=ADMIN)

    assert response.status_code == 400
    assert response.json()["message"] == "You cannot remove yourself from the organization"
    assert identity.get_membership("org-a", "u1") is not None


def test_provider_error_message_is_passed_through(client: TestClient) -> None:
    response = client.post("/api/trpc/team.removeMember", json={"user_id": "u3"}, headers=ADMIN)

    assert response.status_code == 502
    body = response.json()
    assert body["code"] == "UPSTREAM_PROVIDER_ERROR"
    assert body["message"] == "Membership not found"


def test_session_procedure_reports_identity(client: TestClient) -> None:
    response = client.get("/api/trpc/auth.session", headers=MEMBER)

    assert response.status_code == 200
    assert response.json() == {
        "authenticated": True,
        "user_id": "u2",
        "organization_id": "org-a",
        "role": "basic_member",
        "session_id": "sess-1",
    }
