"""
Unit tests for the schema bootstrap.
"""

from sqlalchemy import create_engine, inspect

from pharmacare.database.init_db import init_database


class TestInitDatabase:
    """Table creation on an empty database."""

    def test_creates_all_tables(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'fresh.db'}")

        status = init_database(engine)

        assert status == {
            "companies": True,
            "company_users": True,
            "payments": True,
            "subscriptions": True,
            "users": True,
        }
        assert "uq_subscriptions_tx_ref" in {
            c["name"] for c in inspect(engine).get_unique_constraints("subscriptions")
        }
        engine.dispose()

    def test_is_rerunnable(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'fresh.db'}")

        init_database(engine)
        status = init_database(engine)

        assert all(status.values())
        engine.dispose()
