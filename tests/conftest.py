import os
import sys
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_DATA_DIR = Path(tempfile.mkdtemp(prefix="invtrack-tests-"))
os.environ.setdefault("DATA_DIR", str(_DATA_DIR))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DATA_DIR / 'inventory.db'}")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from invtrack.core.security import hash_password
from invtrack.db.session import Base, enable_sqlite_foreign_keys
from invtrack.models import (
    Area,
    AreaItem,
    Category,
    Department,
    Item,
    MonthlyInventory,
    Record,
    RecordItem,
    User,
)
from invtrack.services import lookups


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _fresh_lookups():
    # Department ids repeat across the per-test databases.
    lookups.clear()
    yield
    lookups.clear()


class Factory:
    """Small helpers that insert rows directly, bypassing validation."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def department(self, name="Housekeeping"):
        return self._save(Department(name=name))

    def area(self, department, name="Linen room"):
        return self._save(Area(name=name, department_id=department.id))

    def category(self, department, name="Linen", tagged=False):
        return self._save(Category(name=name, department_id=department.id if department else None, tagged=tagged))

    def item(self, category, name, *, areas=(), article_number=None, vendor=None, unit=None):
        item = self._save(
            Item(
                name=name,
                category_id=category.id,
                article_number=article_number,
                vendor=vendor,
                unit=unit,
            )
        )
        for area in areas:
            self.db.add(AreaItem(area_id=area.id, item_id=item.id))
        self.db.commit()
        return item

    def user(self, username="lead", *, role="standard", department=None, password="secret123"):
        return self._save(
            User(
                username=username,
                password=hash_password(password),
                role=role,
                department_id=department.id if department else None,
                failed_attempts=0,
            )
        )

    def record(self, area, lines, *, day="2024-05-31", created_at=None, user=None):
        record = Record(
            area_id=area.id,
            user_id=user.id if user else None,
            inventory_date=day,
            created_at=created_at or f"{day}T12:00:00Z",
        )
        record.items = [RecordItem(item_id=item.id, qty=qty) for item, qty in lines.items()]
        return self._save(record)

    def snapshot(self, department, item, month, year, qty, notes=""):
        return self._save(
            MonthlyInventory(
                department_id=department.id,
                item_id=item.id if item is not None else None,
                month=month,
                year=year,
                qty_total=qty,
                notes=notes,
            )
        )


@pytest.fixture()
def factory(db_session):
    return Factory(db_session)


@pytest.fixture()
def client(engine):
    from fastapi.testclient import TestClient

    from invtrack import app
    from invtrack.db.session import get_db

    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def login(client):
    """Return a callable that exchanges credentials for bearer headers."""

    def _login(username, password="secret123"):
        response = client.post("/api/v1/auth/token", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
