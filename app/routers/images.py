"""
Paragraph illustration endpoint (admin only).

POST /api/generate-paragraph-image

Pipeline: optimise the selection into an image prompt (Gemini, paying key)
-> generate a cartoon illustration (Imagen) -> upload to Cloudinary
-> record a GeneratedImage row.  Every failure answers with
``{"success": false, "detail": ..., "code": ...}``.
"""
import logging
import time

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies.auth import require_admin
from app.exceptions import ApiError
from app.models.database_models import Article, GeneratedImage, Paragraph, User
from app.models.schemas import ParagraphImageRequest, ParagraphImageResponse
from app.services.gemini import GeminiClient, GeminiError, get_gemini_client
from app.services.image_storage import CloudinaryStorage, get_image_storage
from app.services.imagen import ImageGenerationError, ImagenService, get_imagen_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _failure(status_code: int, message: str, code: str) -> ApiError:
    return ApiError(status_code, message, code=code, extra={"success": False})


@router.post("", response_model=ParagraphImageResponse)
async def generate_paragraph_image(
    body: ParagraphImageRequest,
    user: User = Depends(require_admin),
    gemini: GeminiClient = Depends(get_gemini_client),
    imagen: ImagenService = Depends(get_imagen_service),
    storage: CloudinaryStorage = Depends(get_image_storage),
    db: AsyncSession = Depends(get_db),
) -> ParagraphImageResponse:
    if not body.paragraph_id or not body.selected_text or not body.full_context:
        raise _failure(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields: paragraphId, selectedText, fullContext",
            "VALIDATION_ERROR",
        )

    paragraph = (
        await db.execute(
            select(Paragraph)
            .join(Article, Paragraph.article_id == Article.id)
            .where(Paragraph.id == body.paragraph_id, Article.author_id == user.id)
        )
    ).scalar_one_or_none()
    if paragraph is None:
        raise _failure(
            status.HTTP_404_NOT_FOUND,
            "Paragraph not found or access denied",
            "VALIDATION_ERROR",
        )

    try:
        optimized_prompt = await gemini.optimize_image_prompt(body.selected_text, body.full_context)
    except GeminiError as exc:
        logger.error("Prompt optimization failed: %s", exc)
        raise _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to optimize image prompt", "AI_ERROR")

    try:
        image_data = await imagen.generate_cartoon_image(optimized_prompt)
    except ImageGenerationError as exc:
        logger.error("Image generation failed: %s", exc)
        raise _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate image", "AI_ERROR")

    upload = await storage.upload_image(
        image_data,
        folder=settings.CLOUDINARY_FOLDER,
        public_id=f"paragraph-{paragraph.id}-{int(time.time() * 1000)}",
    )
    if not upload.success or not upload.url:
        logger.error("Cloudinary upload failed: %s", upload.error or "Upload failed")
        raise _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to upload image to cloud storage",
            "STORAGE_ERROR",
        )

    db.add(
        GeneratedImage(
            paragraph_id=paragraph.id,
            article_id=paragraph.article_id,
            image_url=upload.url,
            prompt=optimized_prompt,
            selected_text=body.selected_text,
        )
    )
    await db.flush()

    logger.info("Generated illustration for paragraph=%s: %s", paragraph.id, upload.url)
    return ParagraphImageResponse(image_url=upload.url)
