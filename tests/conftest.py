"""
Pytest configuration and fixtures for the lead import tests.

Every test session gets its own SQLite database file and staging directory.
The environment is set before any ``app`` import so that ``settings`` picks
it up.
"""
import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="lead-import-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'leads.db')}"
os.environ["UPLOAD_STAGING_DIR"] = os.path.join(_TEST_ROOT, "staging")
os.environ["LEAD_IMPORT_WRITE_WORKERS"] = "1"
os.environ.setdefault("SKIP_DB_INIT", "0")

import pytest

from app.db.models import College, District, Mandal, School, State
from app.db.session import Base, get_engine, get_session_local, init_db


@pytest.fixture(scope="session", autouse=True)
def initialize_test_database():
    """Create every table once for the test session."""
    init_db()
    yield
    get_engine().dispose()


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty all tables after each test so tests stay independent."""
    yield
    engine = get_engine()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def session_factory():
    return get_session_local()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def master_data(db_session):
    """A small gazetteer: Andhra Pradesh > Kakinada > Peddapuram / Samalkot."""
    state = State(name="Andhra Pradesh")
    db_session.add(state)
    db_session.flush()

    kakinada = District(state_id=state.id, name="Kakinada")
    guntur = District(state_id=state.id, name="Guntur")
    db_session.add_all([kakinada, guntur])
    db_session.flush()

    db_session.add_all([
        Mandal(district_id=kakinada.id, name="Peddapuram"),
        Mandal(district_id=kakinada.id, name="Samalkot"),
        Mandal(district_id=guntur.id, name="Tenali"),
        School(name="ZP High School Peddapuram"),
        College(name="Aditya Junior College"),
        State(name="Telangana", is_active=False),
    ])
    db_session.commit()
    return {"state_id": state.id, "kakinada_id": kakinada.id, "guntur_id": guntur.id}
