"""Tests for soundwave.db module."""

from sqlalchemy import inspect, select

from soundwave.db import get_database_url, init_db
from soundwave.models import STATE_QUEUED, JobRecord


class TestInitDb:
    """Tests for database initialization."""

    def test_creates_database_file(self, temp_db):
        """init_db should create the database file."""
        db_path, _, _ = temp_db
        assert db_path.exists()

    def test_creates_job_records_table(self, temp_db):
        _, engine, _ = temp_db

        assert "job_records" in inspect(engine).get_table_names()

    def test_idempotent(self, temp_db):
        """init_db should be safe to call multiple times."""
        db_path, _, SessionFactory = temp_db
        with SessionFactory() as session:
            session.add(JobRecord(job_id="abc", name="audio-processing", payload_json="{}"))
            session.commit()

        engine2, SessionFactory2 = init_db(db_path)
        with SessionFactory2() as session:
            record = session.scalars(select(JobRecord).where(JobRecord.job_id == "abc")).one()
        engine2.dispose()

        assert record.state == STATE_QUEUED
        assert record.progress == 0
        assert record.removed is False
        assert record.created_at is not None

    def test_database_url(self, tmp_path):
        assert get_database_url(tmp_path / "x.db") == f"sqlite:///{tmp_path / 'x.db'}"
