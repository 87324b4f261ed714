"""Tests for the assignment store's at-most-one guarantee."""

import logging

import pytest
import structlog
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from app.core.exceptions import DuplicateAssignment, StorageError
from app.core.logging import configure_logging
from app.models.orm.assignment import Variant
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.user_repo import UserRepository


@pytest.fixture
def experiment(make_flag, make_experiment):
    return make_experiment(make_flag())


@pytest.fixture
def user(db):
    return UserRepository(db).ensure_user("user-1")


class TestAssignmentRepository:
    def test_get_missing_returns_none(self, db, experiment, user):
        assert AssignmentRepository(db).get_assignment(experiment.id, user.id) is None

    def test_create_then_get(self, db, experiment, user):
        repo = AssignmentRepository(db)
        created = repo.create_assignment(experiment.id, user.id, Variant.B)

        fetched = repo.get_assignment(experiment.id, user.id)
        assert fetched.id == created.id
        assert fetched.variant == Variant.B
        assert fetched.created_at is not None

    def test_create_duplicate_fails_without_overwriting(self, db, experiment, user, count_assignments):
        repo = AssignmentRepository(db)
        repo.create_assignment(experiment.id, user.id, Variant.A)

        with pytest.raises(DuplicateAssignment):
            repo.create_assignment(experiment.id, user.id, Variant.B)

        assert repo.get_assignment(experiment.id, user.id).variant == Variant.A
        assert count_assignments(experiment.id) == 1

    def test_get_or_create_calls_supplier_once(self, db, experiment, user):
        repo = AssignmentRepository(db)
        calls = []

        def supplier():
            calls.append(1)
            return Variant.B

        first = repo.get_or_create(experiment.id, user.id, supplier)
        second = repo.get_or_create(experiment.id, user.id, supplier)

        assert first.variant == second.variant == Variant.B
        assert len(calls) == 1

    def test_get_or_create_returns_race_winner(self, db, session_factory, experiment, user, count_assignments):
        """A row inserted between our read and our insert wins."""
        repo = AssignmentRepository(db)
        other_session = session_factory()

        def supplier():
            AssignmentRepository(other_session).create_assignment(experiment.id, user.id, Variant.A)
            return Variant.B

        try:
            result = repo.get_or_create(experiment.id, user.id, supplier)
        finally:
            other_session.close()

        assert result.variant == Variant.A
        assert count_assignments(experiment.id, user.id) == 1

    def test_get_or_create_raises_when_conflict_row_missing(self, db, experiment, user, monkeypatch):
        repo = AssignmentRepository(db)

        def conflicting_create(experiment_id, user_id, variant):
            raise DuplicateAssignment("conflict")

        monkeypatch.setattr(repo, "create_assignment", conflicting_create)

        with pytest.raises(StorageError):
            repo.get_or_create(experiment.id, user.id, lambda: Variant.A)

    def test_listing_includes_user(self, db, experiment):
        user_repo = UserRepository(db)
        repo = AssignmentRepository(db)
        for external_id in ("u-1", "u-2", "u-3"):
            user = user_repo.ensure_user(external_id)
            repo.create_assignment(experiment.id, user.id, Variant.A)

        assignments = repo.get_assignments_for_experiment(experiment.id)

        assert len(assignments) == 3
        assert {a.user.user_id for a in assignments} == {"u-1", "u-2", "u-3"}

    def test_create_rolls_back_on_storage_failure(self, db, experiment, user, monkeypatch):
        repo = AssignmentRepository(db)

        def failing_commit():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db, "commit", failing_commit)

        with pytest.raises(StorageError):
            repo.create_assignment(experiment.id, user.id, Variant.A)

        monkeypatch.undo()
        assert repo.get_assignment(experiment.id, user.id) is None
        # The session is usable again after the rollback
        assert repo.create_assignment(experiment.id, user.id, Variant.B).variant == Variant.B

    def test_repr_lists_columns(self, db, experiment, user):
        assignment = AssignmentRepository(db).create_assignment(experiment.id, user.id, Variant.A)

        text = repr(assignment)

        assert text.startswith("AssignmentORM(")
        assert f"experiment_id={experiment.id!r}" in text
        assert f"user_id={user.id!r}" in text


@pytest.fixture
def json_logging():
    configure_logging("INFO")
    yield
    structlog.reset_defaults()


class TestAssignmentLogging:
    def _lose_race(self, db, session_factory, experiment, user):
        other_session = session_factory()

        def supplier():
            AssignmentRepository(other_session).create_assignment(experiment.id, user.id, Variant.A)
            return Variant.B

        try:
            return AssignmentRepository(db).get_or_create(experiment.id, user.id, supplier)
        finally:
            other_session.close()

    def test_race_reread_log_carries_ids(self, db, session_factory, experiment, user, json_logging, caplog):
        caplog.set_level(logging.INFO)

        self._lose_race(db, session_factory, experiment, user)

        records = [r for r in caplog.records if "Lost assignment race" in r.getMessage()]
        assert len(records) == 1
        assert experiment.id in records[0].getMessage()
        assert user.id in records[0].getMessage()

    def test_race_reread_event_is_structured(self, db, session_factory, experiment, user):
        with capture_logs() as logs:
            self._lose_race(db, session_factory, experiment, user)

        [event] = [e for e in logs if e["event"] == "Lost assignment race, re-reading stored variant"]
        assert event["experiment_id"] == experiment.id
        assert event["user_id"] == user.id
        assert event["log_level"] == "info"

    def test_new_assignment_logs_variant(self, db, experiment, user):
        with capture_logs() as logs:
            AssignmentRepository(db).get_or_create(experiment.id, user.id, lambda: Variant.B)

        [event] = [e for e in logs if e["event"] == "Assigned user to variant"]
        assert event["experiment_id"] == experiment.id
        assert event["variant"] == "B"
