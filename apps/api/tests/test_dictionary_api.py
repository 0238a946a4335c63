from __future__ import annotations

import json
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import CRMDictionary
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


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    provider = InMemoryIdentityProvider()
    provider.add_member("org-a", "u2", identifier="member@a.com", role=OrgRole.BASIC_MEMBER)
    set_identity_provider(provider)

    db_session.add_all(
        [
            CRMDictionary(type="LEAD_STATUS", label="open", value="open", org_id="org-a"),
            CRMDictionary(type="LEAD_STATUS", label="closed", value="closed", org_id="org-a"),
            CRMDictionary(type="DEAL_STAGE", label="open", value="open", org_id="org-a"),
            CRMDictionary(type="LEAD_STATUS", label="foreign", value="foreign", org_id="org-b"),
        ]
    )
    db_session.commit()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _headers() -> dict[str, str]:
    token = jwt.encode(
        {"sub": "u2", "org_id": "org-a", "org_role": "org:member"},
        get_settings().session_jwt_key,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def test_by_type_returns_tenant_entries_of_that_type(client: TestClient) -> None:
    response = client.get(
        "/api/trpc/dictionary.byType", params={"input": json.dumps("LEAD_STATUS")}, headers=_headers()
    )

    assert response.status_code == 200
    values = sorted(item["value"] for item in response.json())
    assert values == ["closed", "open"]
    assert {item["org_id"] for item in response.json()} == {"org-a"}


def test_unknown_type_is_rejected(client: TestClient) -> None:
    response = client.get(
        "/api/trpc/dictionary.byType", params={"input": json.dumps("COLOR")}, headers=_headers()
    )

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_FAILED"


def test_missing_input_is_rejected(client: TestClient) -> None:
    response = client.get("/api/trpc/dictionary.byType", headers=_headers())

    assert response.status_code == 422
