import os
import sys
import tempfile
from pathlib import Path

import pytest
import requests

# Ensure the package is importable when running tests from the repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Keep the module-level engine away from any real database
os.environ["DATABASE_URL"] = f"sqlite:///{Path(tempfile.gettempdir()) / 'chem_inventory_pytest.db'}"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from chem_inventory import lookup, models  # noqa: E402
from chem_inventory.database import get_db, init_db, make_engine  # noqa: E402
from chem_inventory.main import app  # noqa: E402


def _offline(*args, **kwargs):
    raise requests.ConnectionError("network disabled in tests")


@pytest.fixture(autouse=True)
def no_network(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(lookup.requests, "get", _offline)


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'inventory.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory) -> TestClient:
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_chemical(db):
    def _make(name="Ethanol", cas_number=None, **fields) -> models.Chemical:
        chemical = models.Chemical(name=name, cas_number=cas_number, **fields)
        db.add(chemical)
        db.commit()
        db.refresh(chemical)
        return chemical

    return _make
