import os
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mktops.core.security import create_access_token
from mktops.db import models
from mktops.db import session as db_session_module
from mktops.db.init_db import ensure_permission_defaults
from mktops.db.session import get_db
from mktops.main import app
from mktops.services.permissions import permission_resolver


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def fresh_permission_cache():
    permission_resolver.invalidate()
    yield
    permission_resolver.invalidate()


@pytest.fixture()
def session_factory(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_STORAGE", "1")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    factory = make_session_factory()
    monkeypatch.setattr(db_session_module, "SessionLocal", factory)
    yield factory
    os.environ.pop("LOCAL_STORAGE", None)
    os.environ.pop("LOCAL_STORAGE_DIR", None)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture()
def seeded(db_session):
    """Status padrao, um tipo e tres perfis (admin, designer, visualizador)."""
    statuses = {
        "backlog": models.Status(name="Backlog", order=1, kind="backlog"),
        "production": models.Status(name="Em Produção", order=2, kind="production"),
        "review": models.Status(name="Revisão", order=3, kind="review"),
        "approval": models.Status(name="Ap. Gerente", order=4, kind="approval"),
        "completed": models.Status(name="Concluído", order=5, kind="completed"),
    }
    demand_type = models.DemandType(name="Post")
    job_title = models.JobTitle(name="Designer")
    db_session.add_all([*statuses.values(), demand_type, job_title])
    db_session.commit()

    profiles = {
        "admin": models.Profile(name="Ana Admin", email="admin@test.local", role="admin", permission_level=4),
        "designer": models.Profile(
            name="Davi Designer",
            email="designer@test.local",
            role="designer",
            permission_level=2,
            job_title_id=job_title.id,
        ),
        "viewer": models.Profile(
            name="Vera Leitura", email="viewer@test.local", role="visualizador", permission_level=1
        ),
    }
    db_session.add_all(profiles.values())
    db_session.commit()
    ensure_permission_defaults(db_session)
    return {"statuses": statuses, "type": demand_type, "job_title": job_title, "profiles": profiles}


@pytest.fixture()
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


def auth_headers(profile) -> dict:
    token = create_access_token({"sub": profile.id})
    return {"Authorization": f"Bearer {token}"}


def make_demand(db, status, **fields):
    values = {
        "title": "Post de lancamento",
        "status_id": status.id,
        "deadline": date.today() + timedelta(days=7),
        "accumulated_time": 0,
    }
    values.update(fields)
    demand = models.Demand(**values)
    db.add(demand)
    db.commit()
    db.refresh(demand)
    return demand
