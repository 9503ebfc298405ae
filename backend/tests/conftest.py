from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import create_access_token, get_password_hash
from app.core.errors import ExternalServiceError
from app.core.llm import get_llm_client
from app.db.base import Base, build_engine
from app.db.session import get_db
from app.main import app
from app.models.user import User
from app.services.messaging import get_messaging_service

PASSWORD = "secret123"
_PASSWORD_HASH = get_password_hash(PASSWORD)


class FakeMessenger:
    """Records outbound messages; numbers in ``failing`` raise like a gateway error"""

    def __init__(self):
        self.sent: List[Dict[str, str]] = []
        self.failing = set()

    async def send(self, phone: str, message: str):
        if phone in self.failing:
            raise ExternalServiceError(f"Gowa API error 500: cannot reach {phone}")
        self.sent.append({"phone": phone, "message": message})
        return {"code": "SUCCESS"}

    async def close(self):
        pass


class FakeLLM:
    """Returns queued replies in order; an Exception instance in the queue is raised"""

    def __init__(self):
        self.replies: List = []
        self.calls: List[Dict] = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def _next(self):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_text(self, api_key: str, model: str, prompt: str) -> str:
        self.calls.append({"api_key": api_key, "model": model, "prompt": prompt})
        return self._next()

    async def generate_content(self, api_key, model, contents, system_instruction=None, temperature=None) -> str:
        self.calls.append({
            "api_key": api_key,
            "model": model,
            "contents": contents,
            "system_instruction": system_instruction,
        })
        return self._next()


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def client(session_factory, messenger, llm):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_messaging_service] = lambda: messenger
    app.dependency_overrides[get_llm_client] = lambda: llm
    # No context manager: lifespan (table creation on the real database, scheduler) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email: str = "ana@example.com", phone: Optional[str] = None,
              timezone: Optional[str] = None, name: Optional[str] = "Ana") -> User:
    user = User(email=email, password_hash=_PASSWORD_HASH, name=name, phone=phone, timezone=timezone)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def other_user(db):
    return make_user(db, email="ben@example.com", name="Ben")
