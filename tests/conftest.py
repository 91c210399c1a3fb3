"""
Shared fixtures for Glossa backend integration tests.

Tests run against a throwaway SQLite database (aiosqlite) unless
TEST_DATABASE_URL points somewhere else.  Each test function gets its own
session; tables are created before and dropped after every test.

The AI providers and image storage are replaced by in-memory fakes through
FastAPI dependency overrides, so no network access is needed.
"""
from __future__ import annotations

import json
import os
from typing import AsyncGenerator, Dict, List, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any app module is imported, so that
# settings and the global engine point at the test configuration.
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///./glossa_test.db",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REGISTER_CODE"] = "let-me-in"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET_KEY"] = "test-secret"

from app.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.database_models import User, UserRole  # noqa: E402
from app.services.gemini import GeminiError, get_gemini_client, ndjson_line  # noqa: E402
from app.services.image_storage import UploadResult, get_image_storage  # noqa: E402
from app.services.imagen import ImageGenerationError, get_imagen_service  # noqa: E402
from app.services.tokens import ACCESS_TOKEN_TYPE  # noqa: E402
from app.utils.security import hash_password, sign_token  # noqa: E402


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGemini:
    """Stands in for GeminiClient; records prompts and replays canned output."""

    def __init__(self) -> None:
        self.responses: List[str] = []
        self.default_response = "fake response"
        self.stream_chunks: List[str] = ["Hello ", "world"]
        self.optimized_prompt = "A child reading under a tree"
        self.fail = False
        self.prompts: List[str] = []
        self.is_configured = True

    async def generate_text(self, prompt: str, model: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise GeminiError("All API keys have hit quota limits or failed: boom")
        if self.responses:
            return self.responses.pop(0)
        return self.default_response

    async def stream_text(self, prompt: str, model: Optional[str] = None):
        self.prompts.append(prompt)
        for chunk in self.stream_chunks:
            yield ndjson_line({"chunk": chunk})

    async def optimize_image_prompt(self, selected_text: str, full_context: str) -> str:
        self.prompts.append(selected_text)
        if self.fail:
            raise GeminiError("Failed to optimize image prompt: boom")
        return self.optimized_prompt


class FakeImagen:
    def __init__(self) -> None:
        self.fail = False
        self.prompts: List[str] = []

    async def generate_cartoon_image(self, optimized_prompt: str) -> str:
        self.prompts.append(optimized_prompt)
        if self.fail:
            raise ImageGenerationError("Failed to generate image: No images were generated")
        return "aW1hZ2U="


class FakeStorage:
    def __init__(self) -> None:
        self.fail = False
        self.uploads: List[Dict[str, Optional[str]]] = []

    async def upload_image(self, base64_data, folder=None, public_id=None) -> UploadResult:
        self.uploads.append({"data": base64_data, "folder": folder, "public_id": public_id})
        if self.fail:
            return UploadResult(success=False, error="Cloudinary is not configured")
        return UploadResult(
            success=True,
            url=f"https://res.cloudinary.com/demo/image/upload/{folder}/{public_id}.png",
            public_id=f"{folder}/{public_id}",
        )


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test.  Tables are created fresh and dropped
    afterwards so each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest_asyncio.fixture
async def fake_imagen() -> FakeImagen:
    return FakeImagen()


@pytest_asyncio.fixture
async def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    fake_gemini: FakeGemini,
    fake_imagen: FakeImagen,
    fake_storage: FakeStorage,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB, AI and storage
    dependencies overridden.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_gemini_client] = lambda: fake_gemini
    app.dependency_overrides[get_imagen_service] = lambda: fake_imagen
    app.dependency_overrides[get_image_storage] = lambda: fake_storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def create_user(
    db: AsyncSession,
    username: str = "reader",
    password: str = "secret123",
    role: str = UserRole.USER.value,
    need_change_password: bool = False,
) -> User:
    user = User(
        username=username,
        name=username.title(),
        password=hash_password(password),
        role=role,
        need_change_password=need_change_password,
    )
    db.add(user)
    await db.flush()
    return user


def auth_headers(user: User) -> Dict[str, str]:
    """Bearer header carrying a freshly signed access token for *user*."""
    token = sign_token(
        {
            "sub": user.id,
            "username": user.username,
            "needChangePassword": bool(user.need_change_password),
            "role": user.role,
            "typ": ACCESS_TOKEN_TYPE,
        },
        "30m",
    )
    return {"Authorization": f"Bearer {token}"}


def rich_content(*texts: str) -> Dict:
    """Article content with one paragraph block per text."""
    return {
        "version": "1.0",
        "blocks": [
            {
                "id": f"block-{i}",
                "type": "paragraph",
                "elements": [{"type": "text", "content": text}],
            }
            for i, text in enumerate(texts, start=1)
        ],
    }


async def create_article(
    client: AsyncClient,
    headers: Dict[str, str],
    title: str = "Reading notes",
    texts=("The cat sat on the mat.",),
) -> Dict:
    resp = await client.post(
        "/api/articles",
        json={"title": title, "description": "notes", "content": rich_content(*texts)},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def root_analysis_json(**overrides):
    data = {
        "viMeaning": "xây dựng",
        "prefixText": "con",
        "rootText": "struct",
        "connection": "'con' (together) + 'struct' (build): build together",
        "sameRoot": [
            {"word": "destruct", "viMeaning": "phá hủy", "prefixText": "de", "rootText": "struct", "connection": "un-build"},
            {"word": "instruct", "viMeaning": "hướng dẫn", "prefixText": "in", "rootText": "struct", "connection": "build in"},
            {"word": "structure", "viMeaning": "cấu trúc", "prefixText": None, "rootText": "struct", "connection": "a build"},
            {"word": "obstruct", "viMeaning": "cản trở", "prefixText": "ob", "rootText": "struct", "connection": "build against"},
            {"word": "infrastructure", "viMeaning": "cơ sở hạ tầng", "prefixText": "infra", "rootText": "struct", "connection": "below build"},
        ],
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)
