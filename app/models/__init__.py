"""Database and schema models for Glossa."""
from app.models.database_models import (
    User,
    Article,
    Paragraph,
    Sentence,
    Annotation,
    GeneratedImage,
    UserRole,
    AnnotationType,
)
from app.models.schemas import (
    ArticleResponse,
    ArticleDetailResponse,
    ParagraphResponse,
    SentenceResponse,
    AnnotationResponse,
    GeneratedImageResponse,
    RootAnalysisResult,
    UserProfile,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "Article",
    "Paragraph",
    "Sentence",
    "Annotation",
    "GeneratedImage",
    "UserRole",
    "AnnotationType",
    # Pydantic schemas
    "ArticleResponse",
    "ArticleDetailResponse",
    "ParagraphResponse",
    "SentenceResponse",
    "AnnotationResponse",
    "GeneratedImageResponse",
    "RootAnalysisResult",
    "UserProfile",
    "HealthCheckResponse",
]
