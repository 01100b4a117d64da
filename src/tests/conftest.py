"""Pytest configuration and fixtures for service layer tests."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models import ProductionStatus
from src.models.base import Base
# Importing the database module registers the SQLite pragma listener
from src.services.database import get_session_factory  # noqa: F401
from src.utils.config import reset_config


@pytest.fixture(autouse=True)
def test_config(monkeypatch):
    """Run every test against a fresh 'test' configuration."""
    monkeypatch.setenv("WIP_TRACKER_ENV", "test")
    monkeypatch.delenv("WIP_TRACKER_DATABASE_URL", raising=False)
    monkeypatch.delenv("WIP_TRACKER_PERSISTENCE_TIMEOUT", raising=False)
    monkeypatch.delenv("WIP_TRACKER_WORKLOAD_THRESHOLD", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def file_db(tmp_path):
    """File-backed database where every session_scope() opens its own session.

    test_db hands out one thread-local session, so two commands there can
    never race. Use this fixture when two writers must interleave.
    """
    import src.services.database as db_module

    engine = db_module.create_database_engine(f"sqlite:///{tmp_path / 'wip.db'}", timeout=5)
    db_module.init_database(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: session_factory

    yield session_factory

    db_module.get_session_factory = original_get_session
    engine.dispose()


@pytest.fixture(scope="function")
def create_order(test_db):
    """Factory creating PENDING orders through the orchestrator; returns the order ID."""
    from src.services import production_orchestrator

    def _create(**kwargs):
        kwargs.setdefault("quantity", 4)
        kwargs.setdefault("unit_value", Decimal("12.50"))
        kwargs.setdefault("reference", "BOM-100")
        result = production_orchestrator.create_production_order(**kwargs)
        assert result.success, result.error
        return result.data["id"]

    return _create


@pytest.fixture(scope="function")
def pending_order(create_order):
    """Provide a PENDING order ID."""
    return create_order()


@pytest.fixture(scope="function")
def drive_to():
    """Move an order from PENDING to the given status through real commands.

    Example:
        order_id = create_order()
        drive_to(order_id, ProductionStatus.REWORK)
    """
    from src.services import production_orchestrator as orchestrator

    paths = {
        ProductionStatus.PENDING: [],
        ProductionStatus.IN_PROGRESS: ["start"],
        ProductionStatus.ON_HOLD: ["start", "hold"],
        ProductionStatus.QUALITY_CHECK_PENDING: ["start", "check"],
        ProductionStatus.REWORK: ["start", "check", "fail"],
        ProductionStatus.COMPLETED: ["start", "check", "pass"],
        ProductionStatus.CANCELLED: ["cancel"],
    }
    steps = {
        "start": lambda oid: orchestrator.start_production(oid, actor="setup"),
        "hold": lambda oid: orchestrator.put_on_hold(oid, "parts delay", actor="setup"),
        "check": lambda oid: orchestrator.update_production_status(
            oid, ProductionStatus.QUALITY_CHECK_PENDING, actor="setup"
        ),
        "fail": lambda oid: orchestrator.complete_quality_check(oid, False, actor="setup"),
        "pass": lambda oid: orchestrator.complete_quality_check(oid, True, actor="setup"),
        "cancel": lambda oid: orchestrator.cancel_production(oid, "not needed", actor="setup"),
    }

    def _drive(order_id, status):
        for step in paths[status]:
            result = steps[step](order_id)
            assert result.success, result.error
        return order_id

    return _drive
