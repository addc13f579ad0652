"""
Shared fixtures: an in-memory database per test, the app wired to it, and a
fake upstream chat-completions endpoint behind httpx.MockTransport.
"""
import json
import os
import sys
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add the backend directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scriptorium.database import init_db
from scriptorium.dependencies import get_db, get_relay, get_session_factory
from scriptorium.main import app
from scriptorium.services.llm import LLMRelay

UPSTREAM_URL = "https://upstream.test/v1/chat/completions"


# ---------------------------------------------------------------------------
# Fake upstream
# ---------------------------------------------------------------------------

def sse_frame(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


def sse_body(*deltas: str, done: bool = True) -> str:
    body = "".join(sse_frame(delta) for delta in deltas)
    if done:
        body += "data: [DONE]\n\n"
    return body


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given pieces; an exception item is raised in place"""

    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk

    async def aclose(self):
        self.closed = True


class FakeUpstream:
    """Records requests and answers each with the configured status and body chunks"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.streams: List[ChunkedStream] = []
        self.status_code = 200
        self.chunks = [sse_body("Hello")]
        self.error = None

    def reply(self, *chunks, status_code: int = 200):
        self.chunks = list(chunks)
        self.status_code = status_code

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        stream = ChunkedStream(self.chunks)
        self.streams.append(stream)
        return httpx.Response(self.status_code, stream=stream)

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)

    @property
    def last_user_prompt(self) -> str:
        return self.last_payload["messages"][1]["content"]

    @property
    def last_system_prompt(self) -> str:
        return self.last_payload["messages"][0]["content"]


def make_relay(upstream: FakeUpstream, api_key="test-key") -> LLMRelay:
    return LLMRelay(
        api_url=UPSTREAM_URL,
        api_key=api_key,
        model="test-model",
        transport=httpx.MockTransport(upstream.handler),
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def relay(upstream):
    return make_relay(upstream)


# ---------------------------------------------------------------------------
# Database and app
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def app_overrides(session_factory, relay):
    """Point the app at the test database and the fake upstream"""

    async def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_relay] = lambda: relay
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_overrides):
    # Not entered as a context manager so the lifespan does not touch the real database
    return TestClient(app_overrides)


def asgi_transport(application) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=application)


def create_chapter(client, title, order, content="<p>Text</p>") -> dict:
    response = client.post("/chapters", json={"title": title, "content": content, "order": order})
    assert response.status_code == 201, response.text
    return response.json()["data"]


def raised_from(exc: BaseException, exc_class) -> bool:
    """True if `exc_class` is `exc` or sits in its cause/context chain or exception group"""
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, exc_class):
            return True
        pending.extend(getattr(current, "exceptions", ()))
        pending.extend([current.__cause__, current.__context__])
    return False
