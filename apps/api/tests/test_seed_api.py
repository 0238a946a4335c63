from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import CRMActivity, CRMDeal, CRMDictionary, CRMLead
from app.crm.seed import TenantSeeder
from app.main import app
from app.platform.identity import InMemoryIdentityProvider, set_identity_provider
from app.platform.security.context import AuthContext, OrgRole


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
    provider.add_member("org-c", "u1", identifier="founder@c.com", role=OrgRole.ADMIN, organization_name="Org C")
    provider.add_member("org-c", "u2", identifier="member@c.com")
    provider.add_member("org-d", "u9", identifier="owner@d.com", role=OrgRole.ADMIN, organization_name="Org D")
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


def _headers(user_id: str, role: str, org_id: str = "org-c") -> dict[str, str]:
    token = jwt.encode(
        {"sub": user_id, "org_id": org_id, "org_role": role},
        get_settings().session_jwt_key,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def _count(session: Session, model: type) -> int:
    return session.scalar(select(func.count()).select_from(model).where(_tenant_column(model) == "org-c")) or 0


def _tenant_column(model: type):  # type: ignore[no-untyped-def]
    return model.org_id if model is CRMDictionary else model.team


def test_cold_start_seeds_new_organization(client: TestClient, db_session: Session) -> None:
    response = client.post("/api/trpc/system.coldStart", headers=_headers("u1", "org:admin"))

    assert response.status_code == 200
    assert response.json() == {
        "organization_id": "org-c",
        "dictionary_entries": 9,
        "leads": 4,
        "deals": 4,
        "activities": 3,
    }
    assert _count(db_session, CRMDictionary) == 9
    assert _count(db_session, CRMLead) == 4
    assert _count(db_session, CRMDeal) == 4
    assert _count(db_session, CRMActivity) == 3

    lead = db_session.scalar(select(CRMLead).where(CRMLead.first_name == "John"))
    assert lead is not None
    assert lead.team_name == "Org C"
    assert lead.owner == "u1"
    assert lead.created_by == "founder@c.com"

    provisioned = [entry for entry in events.published_events if entry["event_type"] == "tenant.provisioned"]
    assert provisioned[-1]["organization_id"] == "org-c"
    assert audit.entries_for("system.tenant", "org-c")[-1]["action"] == "provision"


def test_seeded_records_are_visible_to_founder(client: TestClient) -> None:
    headers = _headers("u1", "org:admin")
    assert client.post("/api/trpc/system.coldStart", headers=headers).status_code == 200

    leads = client.get("/api/trpc/lead.leads", headers=headers).json()
    assert len(leads) == 4
    assert {item["team_name"] for item in leads} == {"Org C"}
    assert {item["created_by"] for item in leads} == {"founder@c.com"}

    stages = client.get("/api/trpc/dictionary.byType", params={"input": '"DEAL_STAGE"'}, headers=headers).json()
    assert sorted(item["value"] for item in stages) == ["active", "closed", "open"]


def test_client_supplied_names_are_ignored(client: TestClient, db_session: Session) -> None:
    response = client.post(
        "/api/trpc/system.coldStart",
        json={"user_name": "mallory", "organization_name": "Evil"},
        headers=_headers("u1", "org:admin"),
    )
    assert response.status_code == 200

    for model in (CRMLead, CRMDeal, CRMActivity):
        rows = db_session.scalars(select(model).where(model.team == "org-c")).all()
        assert rows
        assert {(row.created_by, row.updated_by, row.owner_fullname, row.team_name) for row in rows} == {
            ("founder@c.com", "founder@c.com", "founder@c.com", "Org C")
        }


def test_seeded_records_reference_own_tenant_only(client: TestClient, db_session: Session) -> None:
    assert client.post("/api/trpc/system.coldStart", headers=_headers("u1", "org:admin")).status_code == 200
    assert (
        client.post("/api/trpc/system.coldStart", headers=_headers("u9", "org:admin", org_id="org-d")).status_code
        == 200
    )

    dictionary_orgs = {entry.id: entry.org_id for entry in db_session.scalars(select(CRMDictionary))}
    lead_teams = {lead.id: lead.team for lead in db_session.scalars(select(CRMLead))}
    assert set(dictionary_orgs.values()) == {"org-c", "org-d"}

    for model in (CRMLead, CRMDeal, CRMActivity):
        rows = db_session.scalars(select(model)).all()
        assert {row.team for row in rows} == {"org-c", "org-d"}
        for row in rows:
            assert dictionary_orgs[row.dictionary_id] == row.team
            if model is not CRMLead:
                assert row.lead_id is not None
                assert lead_teams[row.lead_id] == row.team


def test_basic_member_cannot_bootstrap(client: TestClient, db_session: Session) -> None:
    response = client.post("/api/trpc/system.coldStart", headers=_headers("u2", "org:member"))

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"
    assert _count(db_session, CRMLead) == 0


def test_cannot_bootstrap_another_organization(client: TestClient, db_session: Session) -> None:
    response = client.post(
        "/api/trpc/system.coldStart", json={"organization_id": "org-z"}, headers=_headers("u1", "org:admin")
    )

    assert response.status_code == 403
    assert _count(db_session, CRMDictionary) == 0


def test_missing_membership_is_bad_request(
    client: TestClient, identity: InMemoryIdentityProvider, db_session: Session
) -> None:
    identity.remove_membership("org-c", "u1")

    response = client.post("/api/trpc/system.coldStart", headers=_headers("u1", "org:admin"))

    assert response.status_code == 400
    assert response.json()["message"] == "Bootstrapping the organization failed, please refresh and try again."
    assert _count(db_session, CRMDictionary) == 0


def test_failure_rolls_back_everything(
    db_session: Session, identity: InMemoryIdentityProvider, monkeypatch: pytest.MonkeyPatch
) -> None:
    seeder = TenantSeeder()

    def explode(*args: object, **kwargs: object) -> list:
        raise RuntimeError("activity insert failed")

    monkeypatch.setattr(seeder, "_create_activities", explode)
    ctx = AuthContext(user_id="u1", organization_id="org-c", role=OrgRole.ADMIN)

    with pytest.raises(RuntimeError):
        seeder.cold_start(db_session, ctx)

    assert _count(db_session, CRMDictionary) == 0
    assert _count(db_session, CRMLead) == 0
    assert _count(db_session, CRMDeal) == 0
    assert not events.published_events
