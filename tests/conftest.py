"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before each test and
dropped after it, so no test data persists. Service tests that
do not care about SQL use the in-memory stores instead.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from atm_ledger.main import app
from atm_ledger.models import Account, Base
from atm_ledger.models.base import get_session_factory
from atm_ledger.services.account_store import InMemoryAccountStore, SqlAccountStore
from atm_ledger.services.ledger_service import LedgerService
from atm_ledger.services.transaction_log import InMemoryTransactionLog, SqlTransactionLog


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 5},
)

# expire_on_commit=False matches the application's session factory:
# the stores read values off rows after their session has committed.
TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestSessionLocal


@pytest.fixture
def db_session():
    """Provide a database session for provisioning and inspection."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_account(db_session):
    """
    Provision an account row directly, the way seed data would.

    Returns the account id.
    """
    def _make(user_id, holder_name="Test User", balance_cents=0, pin="1234", account_id=None):
        account = Account(
            user_id=user_id,
            holder_name=holder_name,
            balance_cents=balance_cents,
            pin=pin,
        )
        if account_id is not None:
            account.id = account_id
        db_session.add(account)
        db_session.commit()
        return account.id

    return _make


@pytest.fixture
def sql_ledger(session_factory):
    return LedgerService(
        SqlAccountStore(session_factory),
        SqlTransactionLog(session_factory),
    )


@pytest.fixture
def memory_accounts():
    return InMemoryAccountStore()


@pytest.fixture
def memory_log():
    return InMemoryTransactionLog()


@pytest.fixture
def memory_ledger(memory_accounts, memory_log):
    return LedgerService(memory_accounts, memory_log, max_attempts=5)


@pytest.fixture
def client():
    """
    Provide a test client with the test database.

    We override the session factory dependency so the FastAPI
    app uses the test database instead of the real one.
    """
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    yield TestClient(app)
    app.dependency_overrides.clear()
