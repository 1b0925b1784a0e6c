from __future__ import annotations

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine


def test_migrations_apply_and_core_schema_exists(migrated_engine: Engine) -> None:
    inspector = inspect(migrated_engine)
    expected_tables = {
        "users",
        "platform_settings",
        "virtual_gifts",
        "client_balances",
        "reader_profiles",
        "reading_sessions",
        "transactions",
        "payout_runs",
        "webhook_events",
    }

    assert expected_tables.issubset(set(inspector.get_table_names()))

    balance_checks = {check["name"] for check in inspector.get_check_constraints("client_balances")}
    reader_checks = {check["name"] for check in inspector.get_check_constraints("reader_profiles")}
    assert "ck_client_balances_balance_non_negative" in balance_checks
    assert "ck_reader_profiles_available_implies_online" in reader_checks
    assert "ck_reader_profiles_pending_non_negative" in reader_checks

    session_checks = inspector.get_check_constraints("reading_sessions")
    transaction_checks = inspector.get_check_constraints("transactions")
    assert any("status" in (check.get("sqltext") or "") for check in session_checks)
    assert any("type" in (check.get("sqltext") or "") for check in transaction_checks)

    with migrated_engine.connect() as connection:
        revision = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()

    assert revision == "0001_initial_schema"
