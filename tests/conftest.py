import os
from datetime import date, datetime, timedelta

import pytest

# Base de datos en memoria y zona por defecto fija, ANTES de importar la app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEFAULT_TIMEZONE"] = "Asia/Kolkata"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

from fastapi.testclient import TestClient  # noqa: E402

from auth import hash_password  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from main import app, get_now  # noqa: E402
from models import Challenge, User, UserRole  # noqa: E402
from timezones import day_start  # noqa: E402

TZ = "Asia/Kolkata"
START = date(2026, 2, 20)


def noon(day: date, timezone: str = TZ) -> datetime:
    """Mediodía local de `day`, como instante UTC"""
    return day_start(timezone, day) + timedelta(hours=12)


class Clock:
    """Reloj que los tests pueden mover"""

    def __init__(self, now: datetime):
        self.now = now

    def set_day(self, day: date, timezone: str = TZ):
        self.now = noon(day, timezone)

    def advance(self, days: int = 1):
        self.now = self.now + timedelta(days=days)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return Clock(noon(START))


@pytest.fixture
def client(db, clock):
    app.dependency_overrides[get_now] = lambda: clock.now
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ─────────────────────────────────────────────────────────────────────────────
# FÁBRICAS
# ─────────────────────────────────────────────────────────────────────────────

def make_user(db, email="ana@example.com", name="Ana", timezone=None, role=UserRole.user.value) -> User:
    user = User(
        email=email,
        password_hash=hash_password("secreto123"),
        name=name,
        timezone=timezone,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_challenge(db, title="Mañanas de 5 días", duration_days=5) -> Challenge:
    challenge = Challenge(title=title, description="Levantarse temprano", duration_days=duration_days)
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    return challenge


def register(client, email="ana@example.com", name="Ana", timezone=None) -> dict:
    """Registra por la API y devuelve las cabeceras con el token"""
    body = {"email": email, "password": "secreto123", "name": name}
    if timezone:
        body["timezone"] = timezone
    response = client.post("/auth/register", json=body)
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def user_headers(client):
    return register(client)


@pytest.fixture
def admin_headers(client, db):
    make_user(db, email="admin@example.com", name="Admin", role=UserRole.admin.value)
    response = client.post("/auth/login", json={"email": "admin@example.com", "password": "secreto123"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}

