"""
Paragraph endpoints, nested under an article.

Paragraph text is split into sentences on save; sentences carry the inline
annotations produced by /api/gemini and the annotation retry endpoint.

Route summary
-------------
GET    /api/articles/{article_id}/paragraphs
POST   /api/articles/{article_id}/paragraphs
GET    /api/articles/{article_id}/paragraphs/{paragraph_id}
PUT    /api/articles/{article_id}/paragraphs/{paragraph_id}
DELETE /api/articles/{article_id}/paragraphs/{paragraph_id}
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.dependencies.auth import get_existing_article, get_owned_article, owned_article
from app.models.database_models import Article, Paragraph, Sentence
from app.models.schemas import (
    DataResponse,
    MessageResponse,
    ParagraphCreateRequest,
    ParagraphResponse,
    ParagraphUpdateRequest,
)
from app.utils.helpers import split_sentences

logger = logging.getLogger(__name__)

router = APIRouter()


def _add_sentences(db: AsyncSession, paragraph_id: str, content: str) -> int:
    sentences = split_sentences(content)
    for index, text in enumerate(sentences):
        db.add(Sentence(paragraph_id=paragraph_id, content=text, order=index))
    return len(sentences)


async def _load_paragraph(paragraph_id: str, db: AsyncSession) -> Paragraph:
    result = await db.execute(
        select(Paragraph)
        .where(Paragraph.id == paragraph_id)
        .options(selectinload(Paragraph.sentences))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _paragraph_in_article(article: Article, paragraph_id: str, db: AsyncSession) -> Paragraph:
    result = await db.execute(
        select(Paragraph).where(
            Paragraph.id == paragraph_id,
            Paragraph.article_id == article.id,
        )
    )
    paragraph = result.scalar_one_or_none()
    if paragraph is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Paragraph not found",
        )
    return paragraph


@router.get("", response_model=DataResponse[List[ParagraphResponse]])
async def list_paragraphs(
    article: Article = Depends(get_existing_article),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[List[ParagraphResponse]]:
    result = await db.execute(
        select(Paragraph)
        .where(Paragraph.article_id == article.id)
        .order_by(Paragraph.order)
        .options(selectinload(Paragraph.sentences))
        .execution_options(populate_existing=True)
    )
    paragraphs = result.scalars().all()
    return DataResponse[List[ParagraphResponse]](
        data=[ParagraphResponse.model_validate(p) for p in paragraphs]
    )


@router.post(
    "",
    response_model=DataResponse[ParagraphResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_paragraph(
    body: ParagraphCreateRequest,
    article: Article = Depends(get_owned_article),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[ParagraphResponse]:
    """
    Add a paragraph.  Without ``order`` it is appended; with ``order`` the
    paragraphs at or after that position move down by one.
    """
    if not body.content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Content is required",
        )

    if body.order is None:
        last = (
            await db.execute(
                select(func.max(Paragraph.order)).where(Paragraph.article_id == article.id)
            )
        ).scalar_one_or_none()
        new_order = 0 if last is None else last + 1
    else:
        new_order = body.order
        await db.execute(
            update(Paragraph)
            .where(Paragraph.article_id == article.id, Paragraph.order >= new_order)
            .values(order=Paragraph.order + 1)
        )

    paragraph = Paragraph(article_id=article.id, content=body.content, order=new_order)
    db.add(paragraph)
    await db.flush()

    count = _add_sentences(db, paragraph.id, body.content)
    await db.flush()

    logger.info(
        "Created paragraph id=%s at order=%d with %d sentences in article=%s",
        paragraph.id,
        new_order,
        count,
        article.id,
    )

    paragraph = await _load_paragraph(paragraph.id, db)
    return DataResponse[ParagraphResponse](data=ParagraphResponse.model_validate(paragraph))


@router.get("/{paragraph_id}", response_model=DataResponse[ParagraphResponse])
async def get_paragraph(
    paragraph_id: str,
    article: Article = Depends(get_existing_article),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[ParagraphResponse]:
    paragraph = await _paragraph_in_article(article, paragraph_id, db)
    paragraph = await _load_paragraph(paragraph.id, db)
    return DataResponse[ParagraphResponse](data=ParagraphResponse.model_validate(paragraph))


@router.put("/{paragraph_id}", response_model=DataResponse[ParagraphResponse])
async def update_paragraph(
    paragraph_id: str,
    body: ParagraphUpdateRequest,
    article: Article = Depends(owned_article("update")),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[ParagraphResponse]:
    """Replace the paragraph text and re-split its sentences (old annotations are dropped)."""
    if not body.content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Content is required",
        )

    paragraph = await _paragraph_in_article(article, paragraph_id, db)

    await db.execute(delete(Sentence).where(Sentence.paragraph_id == paragraph.id))
    paragraph.content = body.content
    _add_sentences(db, paragraph.id, body.content)
    await db.flush()

    paragraph = await _load_paragraph(paragraph.id, db)
    return DataResponse[ParagraphResponse](data=ParagraphResponse.model_validate(paragraph))


@router.delete("/{paragraph_id}", response_model=DataResponse[MessageResponse])
async def delete_paragraph(
    paragraph_id: str,
    article: Article = Depends(owned_article("delete")),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[MessageResponse]:
    """Delete the paragraph and close the gap in the ordering."""
    paragraph = await _paragraph_in_article(article, paragraph_id, db)
    removed_order = paragraph.order

    await db.delete(paragraph)
    await db.flush()

    await db.execute(
        update(Paragraph)
        .where(Paragraph.article_id == article.id, Paragraph.order > removed_order)
        .values(order=Paragraph.order - 1)
    )

    logger.info("Deleted paragraph id=%s from article=%s", paragraph_id, article.id)
    return DataResponse[MessageResponse](data=MessageResponse(message="Paragraph deleted successfully"))
