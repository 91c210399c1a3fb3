"""
Inline annotation endpoint.

POST /api/gemini runs an arbitrary prompt for a signed-in user and, when
the caller owns the paragraph it names, writes the ``[text|meaning]``
result into that paragraph's sentences.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.dependencies.auth import get_current_user
from app.exceptions import ApiError
from app.models.database_models import Paragraph, Sentence, User
from app.models.schemas import GeminiRequest, GeminiResponse
from app.services.gemini import GeminiClient, GeminiError, get_gemini_client
from app.utils.helpers import annotation_payload, existing_annotated_text, replace_first

logger = logging.getLogger(__name__)

router = APIRouter()


def _apply_selection(paragraph: Paragraph, selected_text: str, result: str) -> None:
    """Merge *result* into the sentence containing *selected_text* (or the first sentence)."""
    target = next((s for s in paragraph.sentences if selected_text in s.content), None)
    if target is not None:
        base = existing_annotated_text(target.annotations) or target.content
        target.annotations = annotation_payload(replace_first(base, selected_text, result))
        return

    if not paragraph.sentences:
        return
    first = paragraph.sentences[0]
    existing = existing_annotated_text(first.annotations)
    if existing:
        first.annotations = annotation_payload(f"{existing} {result}")
    else:
        first.annotations = annotation_payload(replace_first(first.content, selected_text, result))


async def _store_result(
    body: GeminiRequest, result: str, user: User, db: AsyncSession
) -> None:
    paragraph = (
        await db.execute(
            select(Paragraph)
            .where(Paragraph.id == body.paragraph_id)
            .options(selectinload(Paragraph.article), selectinload(Paragraph.sentences))
        )
    ).scalar_one_or_none()
    if paragraph is None or paragraph.article.author_id != user.id:
        return

    if body.sentence_id:
        sentence = await db.get(Sentence, body.sentence_id)
        if sentence is not None and sentence.paragraph_id == paragraph.id:
            sentence.annotations = annotation_payload(result)
    elif body.selected_text:
        _apply_selection(paragraph, body.selected_text, result)
    elif paragraph.sentences:
        # Whole-paragraph annotation is kept in one piece on the first sentence
        paragraph.sentences[0].annotations = annotation_payload(result)

    await db.flush()


@router.post("", response_model=GeminiResponse)
async def annotate_inline(
    body: GeminiRequest,
    user: User = Depends(get_current_user),
    gemini: GeminiClient = Depends(get_gemini_client),
    db: AsyncSession = Depends(get_db),
) -> GeminiResponse:
    if not body.prompt:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Prompt is required",
        )

    try:
        result = await gemini.generate_text(body.prompt)
    except GeminiError as exc:
        logger.error("Failed to process with Gemini: %s", exc)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process with Gemini")

    if body.paragraph_id:
        await _store_result(body, result, user, db)

    return GeminiResponse(data=result)
