from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

os.environ.setdefault("GATEWAY_AUTH_SECRET", "test-secret-key")
os.environ.setdefault("GATEWAY_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from prompt_gateway import models  # noqa: E402
from prompt_gateway.api.generate import get_adapters, get_store  # noqa: E402
from prompt_gateway.database import Base  # noqa: E402
from prompt_gateway.services.generation.store import SqlAlchemyGenerationStore  # noqa: E402
from prompt_gateway.services.generation.types import (  # noqa: E402
    ModelConfig,
    ModelStatus,
    ProviderResult,
    ResolvedDraft,
    TurnMessage,
    UsageLogEntry,
)

TEST_SECRET = os.environ["GATEWAY_AUTH_SECRET"]


class InMemoryStore:
    """Dictionary-backed store used by unit tests."""

    def __init__(self) -> None:
        self.drafts: Dict[str, ResolvedDraft] = {}
        self.models: Dict[str, ModelConfig] = {}
        self.usage: List[UsageLogEntry] = []
        self.fail_count = False
        self.fail_record = False

    def add_model(self, model_id: str = "model-1", **overrides: Any) -> ModelConfig:
        values: Dict[str, Any] = {
            "id": model_id,
            "name": "Test model",
            "provider": "openai",
            "provider_model_name": "gpt-4o-mini",
            "status": ModelStatus.ACTIVE,
            "credential": "sk-test",
            "max_tokens": None,
        }
        values.update(overrides)
        config = ModelConfig(**values)
        self.models[model_id] = config
        return config

    def add_draft(self, draft: ResolvedDraft) -> ResolvedDraft:
        self.drafts[draft.id] = draft
        return draft

    def add_usage(self, user_id: str, count: int, *, at: Optional[datetime] = None) -> None:
        timestamp = at or datetime.now(timezone.utc)
        for _ in range(count):
            self.usage.append(
                UsageLogEntry(user_id=user_id, model_id="model-1", token_count=1, timestamp=timestamp)
            )

    def get_draft(self, draft_id: str) -> Optional[ResolvedDraft]:
        return self.drafts.get(draft_id)

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        return self.models.get(model_id)

    def count_usage_since(self, user_id: str, since: datetime) -> int:
        if self.fail_count:
            raise RuntimeError("usage table unavailable")
        return sum(1 for entry in self.usage if entry.user_id == user_id and entry.timestamp >= since)

    def record_usage(self, entry: UsageLogEntry) -> None:
        if self.fail_record:
            raise RuntimeError("usage insert failed")
        self.usage.append(entry)


class RecordingAdapter:
    """Provider adapter double that records every call."""

    def __init__(
        self,
        name: str = "openai",
        *,
        reply: Callable[[Sequence[TurnMessage]], str] | None = None,
        error: Exception | None = None,
        vision: bool = False,
    ) -> None:
        self.name = name
        self.label = name.title()
        self.calls: List[Dict[str, Any]] = []
        self._reply = reply or (lambda messages: messages[0].content)
        self._error = error
        self._vision = vision

    def supports_vision(self, model: str) -> bool:
        return self._vision

    async def call(self, **kwargs: Any) -> ProviderResult:
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        output = self._reply(kwargs["messages"])
        return ProviderResult(output_text=output, token_count=len(output.split()))


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def recording_adapter() -> Callable[..., RecordingAdapter]:
    return RecordingAdapter


@pytest.fixture()
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    database_url = f"sqlite:///{tmp_path}/test.db"
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def sql_store(session_factory: sessionmaker) -> SqlAlchemyGenerationStore:
    return SqlAlchemyGenerationStore(session_factory)


@pytest.fixture()
def seed_model(db_session: Session) -> Callable[..., models.ModelRecord]:
    def _seed(model_id: str = "model-1", **overrides: Any) -> models.ModelRecord:
        values: Dict[str, Any] = {
            "id": model_id,
            "name": "Test model",
            "provider": "openai",
            "provider_model": "gpt-4o-mini",
            "status": "active",
            "api_key": "sk-test",
        }
        values.update(overrides)
        record = models.ModelRecord(**values)
        db_session.add(record)
        db_session.commit()
        return record

    return _seed


@pytest.fixture()
def make_token() -> Callable[..., str]:
    def _build(subject: str = "user-1", *, secret: str = TEST_SECRET, expires_in: int = 3600) -> str:
        claims = {
            "sub": subject,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        return jwt.encode(claims, secret, algorithm="HS256")

    return _build


@pytest.fixture()
def auth_header(make_token: Callable[..., str]) -> Callable[..., Dict[str, str]]:
    def _build(subject: str = "user-1") -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(subject)}"}

    return _build


@pytest.fixture()
def adapters() -> Dict[str, RecordingAdapter]:
    return {
        name: RecordingAdapter(name)
        for name in ("openai", "anthropic", "google", "perplexity", "grok")
    }


@pytest.fixture()
def client(
    sql_store: SqlAlchemyGenerationStore, adapters: Dict[str, RecordingAdapter]
) -> Generator[TestClient, None, None]:
    from prompt_gateway.main import app

    app.dependency_overrides[get_store] = lambda: sql_store
    app.dependency_overrides[get_adapters] = lambda: adapters
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
