"""
Article endpoints.

Route summary
-------------
GET    /api/articles?page=N                   caller's articles, newest first
POST   /api/articles                          create article
GET    /api/articles/{article_id}             article detail
PUT    /api/articles/{article_id}             update title/description/content
DELETE /api/articles/{article_id}             delete (cascades)
PUT    /api/articles/{article_id}/blocks/{block_id}  replace one content block
"""
import logging
import math
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.database import get_db
from app.dependencies.auth import (
    get_current_user,
    get_existing_article,
    get_owned_article,
    owned_article,
)
from app.models.database_models import Article, User, utcnow
from app.models.schemas import (
    AnnotationResponse,
    ArticleCreateRequest,
    ArticleDetailResponse,
    ArticleListResponse,
    ArticleResponse,
    ArticleUpdateRequest,
    BlockUpdateRequest,
    BlockUpdateResponse,
    DataResponse,
    GeneratedImageResponse,
    MessageResponse,
    Pagination,
    UserSummary,
)
from app.utils.helpers import find_block

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _detail_options():
    return (
        selectinload(Article.author),
        selectinload(Article.annotations),
        selectinload(Article.generated_images),
    )


def _to_detail(article: Article) -> ArticleDetailResponse:
    """Serialise an eagerly loaded article: annotations newest first, images oldest first."""
    annotations = sorted(article.annotations, key=lambda a: a.timestamp, reverse=True)
    images = sorted(article.generated_images, key=lambda i: i.created_at)
    return ArticleDetailResponse(
        **ArticleResponse.model_validate(article).model_dump(),
        author=UserSummary.model_validate(article.author) if article.author else None,
        annotations=[AnnotationResponse.model_validate(a) for a in annotations],
        generated_images=[GeneratedImageResponse.model_validate(i) for i in images],
    )


async def _load_detail(article_id: str, db: AsyncSession) -> Article:
    result = await db.execute(
        select(Article)
        .where(Article.id == article_id)
        .options(*_detail_options())
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def _validate_blocks(content) -> None:
    if not isinstance(content, dict) or not isinstance(content.get("blocks"), list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid content structure. Expected rich content with a blocks array.",
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ARTICLE CRUD
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("", response_model=ArticleListResponse)
async def list_articles(
    page: int = Query(1, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ArticleListResponse:
    """The caller's articles, newest first, ARTICLES_PAGE_SIZE per page."""
    page_size = settings.ARTICLES_PAGE_SIZE

    total_count = (
        await db.execute(
            select(func.count()).select_from(Article).where(Article.author_id == user.id)
        )
    ).scalar_one()

    result = await db.execute(
        select(Article)
        .where(Article.author_id == user.id)
        .order_by(Article.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .options(*_detail_options())
        .execution_options(populate_existing=True)
    )
    articles: List[Article] = list(result.scalars().all())

    total_pages = math.ceil(total_count / page_size)
    return ArticleListResponse(
        data=[_to_detail(a) for a in articles],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            total_count=total_count,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        ),
    )


@router.post(
    "",
    response_model=DataResponse[ArticleDetailResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_article(
    body: ArticleCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[ArticleDetailResponse]:
    if not body.title or not body.content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Title and content are required",
        )
    _validate_blocks(body.content)

    article = Article(
        title=body.title,
        description=body.description,
        content=body.content,
        author_id=user.id,
    )
    db.add(article)
    await db.flush()

    logger.info("Created article id=%s title=%r for user=%s", article.id, article.title, user.id)

    article = await _load_detail(article.id, db)
    return DataResponse[ArticleDetailResponse](
        data=_to_detail(article),
        message="Article created successfully",
    )


@router.get("/{article_id}", response_model=DataResponse[ArticleDetailResponse])
async def get_article(
    article: Article = Depends(get_existing_article),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[ArticleDetailResponse]:
    article = await _load_detail(article.id, db)
    return DataResponse[ArticleDetailResponse](data=_to_detail(article))


@router.put("/{article_id}", response_model=DataResponse[ArticleResponse])
async def update_article(
    body: ArticleUpdateRequest,
    article: Article = Depends(owned_article("update")),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[ArticleResponse]:
    """Update the fields that were sent; content is replaced only when provided."""
    if body.title is not None:
        if not body.title.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Title cannot be empty",
            )
        article.title = body.title
    if body.description is not None:
        article.description = body.description
    if body.content:
        _validate_blocks(body.content)
        article.content = body.content

    article.updated_at = utcnow()
    await db.flush()

    return DataResponse[ArticleResponse](data=ArticleResponse.model_validate(article))


@router.delete("/{article_id}", response_model=DataResponse[MessageResponse])
async def delete_article(
    article: Article = Depends(owned_article("delete")),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[MessageResponse]:
    await db.delete(article)
    await db.flush()

    logger.info("Deleted article id=%s", article.id)
    return DataResponse[MessageResponse](data=MessageResponse(message="Article deleted successfully"))


@router.put("/{article_id}/blocks/{block_id}", response_model=DataResponse[BlockUpdateResponse])
async def update_block(
    block_id: str,
    body: BlockUpdateRequest,
    article: Article = Depends(get_owned_article),
    db: AsyncSession = Depends(get_db),
) -> DataResponse[BlockUpdateResponse]:
    """Replace the block with *block_id* in the article's content, in place."""
    block = body.block
    if not isinstance(block, dict) or not block.get("id") or block.get("elements") is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid block structure provided",
        )

    content = article.content
    if not isinstance(content, dict) or not isinstance(content.get("blocks"), list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Article content structure is invalid",
        )

    index = find_block(content, block_id)
    if index == -1:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Block not found in article",
        )

    blocks = list(content["blocks"])
    blocks[index] = block
    # New dict so the JSON column registers the change
    article.content = {**content, "blocks": blocks}
    article.updated_at = utcnow()
    await db.flush()

    return DataResponse[BlockUpdateResponse](
        data=BlockUpdateResponse.model_validate(article),
        message="Block structure updated successfully",
    )
