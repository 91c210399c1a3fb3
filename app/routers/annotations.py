"""
Annotation endpoints, nested under an article.

Route summary
-------------
GET    /api/articles/{article_id}/annotations?blockId=&type=
POST   /api/articles/{article_id}/annotations
DELETE /api/articles/{article_id}/annotations?annotationId=|blockId=
POST   /api/articles/{article_id}/annotations/root    AI word-root analysis, stored
POST   /api/articles/{article_id}/annotations/retry   regenerate one inline annotation
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.dependencies.auth import (
    get_current_user,
    get_existing_article,
    load_owned_article,
    owned_article,
)
from app.exceptions import ApiError
from app.models.database_models import (
    Annotation,
    AnnotationType,
    Article,
    Paragraph,
    Sentence,
    User,
)
from app.models.schemas import (
    AnnotationCreateRequest,
    AnnotationResponse,
    DataResponse,
    DeletedCount,
    RetryAnnotationRequest,
    RetryAnnotationResponse,
    RootAnnotationRequest,
)
from app.services.gemini import GeminiClient, GeminiError, get_gemini_client
from app.services.prompts import inline_annotation_prompt, root_analysis_prompt
from app.services.root_analysis import parse_root_analysis
from app.utils.helpers import (
    annotation_payload,
    existing_annotated_text,
    merge_retried_annotation,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_REQUIRED_FIELDS = ("block_id", "type", "selected_text", "result", "span")


def _valid_span(span: dict) -> bool:
    def is_offset(value) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)

    return bool(
        span.get("startElement")
        and span.get("endElement")
        and is_offset(span.get("startOffset"))
        and is_offset(span.get("endOffset"))
    )


@router.get("", response_model=DataResponse[List[AnnotationResponse]])
async def list_annotations(
    block_id: Optional[str] = Query(None, alias="blockId"),
    type: Optional[str] = Query(None),
    article: Article = Depends(get_existing_article),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[List[AnnotationResponse]]:
    """Annotations of the article, oldest first, optionally filtered."""
    query = select(Annotation).where(Annotation.article_id == article.id)
    if block_id:
        query = query.where(Annotation.block_id == block_id)
    if type:
        query = query.where(Annotation.type == type)

    result = await db.execute(query.order_by(Annotation.timestamp.asc()))
    return DataResponse[List[AnnotationResponse]](
        data=[AnnotationResponse.model_validate(a) for a in result.scalars().all()]
    )


@router.post(
    "",
    response_model=DataResponse[AnnotationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_annotation(
    article_id: str,
    body: AnnotationCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[AnnotationResponse]:
    """Store a client-side annotation. Payload problems are reported before ownership."""
    if any(not getattr(body, field) for field in _REQUIRED_FIELDS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: blockId, type, selectedText, result, span",
        )
    if not _valid_span(body.span):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid span structure",
        )

    article = await load_owned_article(article_id, user, db, "annotate")

    annotation = Annotation(
        article_id=article.id,
        block_id=body.block_id,
        type=body.type,
        selected_text=body.selected_text,
        result=body.result,
        span=body.span,
        metadata_json=body.metadata or {},
    )
    db.add(annotation)
    await db.flush()

    return DataResponse[AnnotationResponse](
        data=AnnotationResponse.model_validate(annotation),
        message="Annotation created successfully",
    )


@router.delete("", response_model=DataResponse[DeletedCount])
async def delete_annotations(
    annotation_id: Optional[str] = Query(None, alias="annotationId"),
    block_id: Optional[str] = Query(None, alias="blockId"),
    article: Article = Depends(owned_article("delete annotations for")),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[DeletedCount]:
    """Delete one annotation, all of a block's, or all of the article's."""
    stmt = delete(Annotation).where(Annotation.article_id == article.id)
    if annotation_id:
        stmt = stmt.where(Annotation.id == annotation_id)
    elif block_id:
        stmt = stmt.where(Annotation.block_id == block_id)

    result = await db.execute(stmt)
    count = result.rowcount or 0

    logger.info("Deleted %d annotation(s) from article=%s", count, article.id)
    return DataResponse[DeletedCount](
        data=DeletedCount(count=count, message=f"Deleted {count} annotation(s)")
    )


@router.post(
    "/root",
    response_model=DataResponse[AnnotationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_root_annotation(
    body: RootAnnotationRequest,
    article: Article = Depends(owned_article("annotate")),
    gemini: GeminiClient = Depends(get_gemini_client),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[AnnotationResponse]:
    """
    Ask the model for a word-root analysis of the selection and store it.

    The AI being unreachable is a 503; anything wrong with what it returned
    is a 500 with details (see app.services.root_analysis).
    """
    prompt = root_analysis_prompt(body.selected_text, body.paragraph_content)
    try:
        ai_response = await gemini.generate_text(prompt)
    except GeminiError as exc:
        logger.error("AI service error during root analysis: %s", exc)
        raise ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "AI analysis service is temporarily unavailable",
            details=["Please try again in a few moments"],
        )

    analysis = parse_root_analysis(ai_response, body.selected_text)

    annotation = Annotation(
        article_id=article.id,
        block_id=body.block_id,
        type=AnnotationType.ROOT.value,
        selected_text=body.selected_text,
        result=f"Root analysis: {analysis.vi_meaning}",
        span=body.span.model_dump(by_alias=True),
        root_result=analysis.model_dump(by_alias=True),
        metadata_json=body.metadata or {},
    )
    db.add(annotation)
    await db.flush()

    logger.info("Stored root analysis for %r in article=%s", body.selected_text, article.id)
    return DataResponse[AnnotationResponse](
        data=AnnotationResponse.model_validate(annotation),
        message="Root annotation created successfully",
    )


@router.post("/retry", response_model=RetryAnnotationResponse)
async def retry_annotation(
    article_id: str,
    body: RetryAnnotationRequest,
    user: User = Depends(get_current_user),
    gemini: GeminiClient = Depends(get_gemini_client),
    db: AsyncSession = Depends(get_db),
) -> RetryAnnotationResponse:
    """Regenerate the ``[text|meaning]`` annotation for *text* in one sentence."""
    if not body.sentence_id or not body.text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="SentenceId and text are required",
        )

    result = await db.execute(
        select(Sentence)
        .where(Sentence.id == body.sentence_id)
        .options(selectinload(Sentence.paragraph).selectinload(Paragraph.article))
    )
    sentence = result.scalar_one_or_none()
    if sentence is None or sentence.paragraph.article_id != article_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sentence not found",
        )
    if sentence.paragraph.article.author_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You don't have permission to retry this annotation",
        )

    prompt = inline_annotation_prompt(body.text, sentence.paragraph.content)
    try:
        annotated = (await gemini.generate_text(prompt)).strip()
    except GeminiError as exc:
        logger.error("AI service error during annotation retry: %s", exc)
        raise ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "AI annotation service is temporarily unavailable",
            details=[str(exc)],
        )

    sentence.annotations = annotation_payload(
        merge_retried_annotation(
            existing_annotated_text(sentence.annotations),
            sentence.content,
            body.text,
            annotated,
        )
    )
    await db.flush()

    return RetryAnnotationResponse(data=annotated)
