"""
Pytest fixtures for testing.

Provides:
- A throwaway SQLite database file per test, with every table created
- Sessions bound to it, plus a factory for extra sessions (threads)
- A TestClient whose get_db dependency points at the same database
- Factory helpers for flags, experiments and users
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from app.core.db import build_engine, get_db, init_db
from app.main import app
from app.models.orm.assignment import AssignmentORM
from app.models.orm.experiment import ExperimentStatus
from app.models.schemas.experiment import ExperimentCreateModel
from app.models.schemas.flag import FeatureFlagCreateModel
from app.services.experiment_service import ExperimentService
from app.services.flag_service import FlagService


@pytest.fixture
def db_engine(tmp_path):
    """File based so several threads can share it."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}", timeout=30)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Test client with database session override."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============ Factory Fixtures ============


@pytest.fixture
def make_flag(db):
    counter = {"n": 0}

    def _make_flag(key=None, enabled=True, name="Checkout redesign"):
        counter["n"] += 1
        return FlagService(db).create_flag(
            FeatureFlagCreateModel(
                key=key or f"flag-{counter['n']}",
                name=name,
                enabled=enabled,
            )
        )

    return _make_flag


@pytest.fixture
def make_experiment(db):
    def _make_experiment(
        flag,
        variant_a_percentage=50.0,
        status=ExperimentStatus.RUNNING,
        name="Button colour",
        **kwargs,
    ):
        return ExperimentService(db).create_experiment(
            ExperimentCreateModel(
                flag_id=flag.id,
                name=name,
                variant_a_percentage=variant_a_percentage,
                variant_b_percentage=100.0 - variant_a_percentage,
                status=status,
                **kwargs,
            )
        )

    return _make_experiment


@pytest.fixture
def count_assignments(db):
    """Number of stored assignments for an experiment, optionally for one user."""

    def _count_assignments(experiment_id, user_id=None):
        stmt = select(func.count()).select_from(AssignmentORM).where(AssignmentORM.experiment_id == experiment_id)
        if user_id is not None:
            stmt = stmt.where(AssignmentORM.user_id == user_id)
        return db.scalar(stmt)

    return _count_assignments
