"""Tests for POST /api/generate-paragraph-image."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.database_models import GeneratedImage
from tests.conftest import auth_headers, create_article, create_user

URL = "/api/generate-paragraph-image"


async def _admin_paragraph(client, db_session):
    admin = await create_user(db_session, "admin", role="admin")
    headers = auth_headers(admin)
    article = await create_article(client, headers)
    resp = await client.post(
        f"/api/articles/{article['id']}/paragraphs",
        json={"content": "A fox jumps over the dog."},
        headers=headers,
    )
    return headers, article, resp.json()["data"]


def _body(paragraph_id):
    return {
        "paragraphId": paragraph_id,
        "selectedText": "fox jumps",
        "fullContext": "A fox jumps over the dog.",
    }


@pytest.mark.asyncio
async def test_generates_uploads_and_records_image(
    client: AsyncClient, db_session, fake_gemini, fake_imagen, fake_storage
):
    headers, article, paragraph = await _admin_paragraph(client, db_session)

    resp = await client.post(URL, json=_body(paragraph["id"]), headers=headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["imageUrl"].startswith("https://res.cloudinary.com/")

    assert fake_imagen.prompts == [fake_gemini.optimized_prompt]
    upload = fake_storage.uploads[0]
    assert upload["folder"] == "paragraph-images"
    assert upload["public_id"].startswith(f"paragraph-{paragraph['id']}-")

    image = (await db_session.execute(select(GeneratedImage))).scalar_one()
    assert image.paragraph_id == paragraph["id"]
    assert image.article_id == article["id"]
    assert image.prompt == fake_gemini.optimized_prompt
    assert image.selected_text == "fox jumps"

    detail = (await client.get(f"/api/articles/{article['id']}", headers=headers)).json()["data"]
    assert [i["imageUrl"] for i in detail["generatedImages"]] == [body["imageUrl"]]


@pytest.mark.asyncio
async def test_requires_login_and_admin(client: AsyncClient, db_session):
    resp = await client.post(URL, json=_body("p"))
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Authentication required", "code": "AUTH_ERROR", "success": False}

    user = await create_user(db_session, "plain")
    resp = await client.post(URL, json=_body("p"), headers=auth_headers(user))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Admin access required"


@pytest.mark.asyncio
async def test_validation_and_missing_paragraph(client: AsyncClient, db_session):
    admin = await create_user(db_session, "admin", role="admin")
    headers = auth_headers(admin)

    resp = await client.post(URL, json={"paragraphId": "p"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"

    resp = await client.post(URL, json=_body("missing"), headers=headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Paragraph not found or access denied"


@pytest.mark.asyncio
async def test_paragraph_of_another_author_is_404(client: AsyncClient, db_session):
    _, _, paragraph = await _admin_paragraph(client, db_session)
    other_admin = await create_user(db_session, "admin2", role="admin")

    resp = await client.post(URL, json=_body(paragraph["id"]), headers=auth_headers(other_admin))
    assert resp.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failing, message, code",
    [
        ("gemini", "Failed to optimize image prompt", "AI_ERROR"),
        ("imagen", "Failed to generate image", "AI_ERROR"),
        ("storage", "Failed to upload image to cloud storage", "STORAGE_ERROR"),
    ],
)
async def test_pipeline_failures(
    client: AsyncClient, db_session, fake_gemini, fake_imagen, fake_storage, failing, message, code
):
    headers, _, paragraph = await _admin_paragraph(client, db_session)
    {"gemini": fake_gemini, "imagen": fake_imagen, "storage": fake_storage}[failing].fail = True

    resp = await client.post(URL, json=_body(paragraph["id"]), headers=headers)
    assert resp.status_code == 500
    assert resp.json() == {"detail": message, "code": code, "success": False}
    assert (await db_session.execute(select(GeneratedImage))).first() is None
