"""
Pydantic schemas for request/response validation.

The frontend speaks camelCase JSON, so every schema derives from ``CamelModel``
which aliases snake_case attributes to camelCase and accepts either form.
"""
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar
from datetime import datetime


T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class DataResponse(CamelModel, Generic[T]):
    """Standard ``{"data": ..., "message": ...}`` envelope."""

    data: T
    message: Optional[str] = None


class MessageResponse(CamelModel):
    message: str


# ---------------------------------------------------------------------------
# Auth Schemas
# ---------------------------------------------------------------------------

class RegisterRequest(CamelModel):
    """Self-registration; requires the shared register code."""

    name: str = Field(..., min_length=2)
    username: str = Field(..., min_length=2)
    register_code: str = Field(..., min_length=1)
    password: str = Field(..., min_length=3)


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=2)
    password: str = Field(..., min_length=3)


class ChangePasswordRequest(CamelModel):
    password: str = Field(..., min_length=3)


class UserSummary(CamelModel):
    id: str
    username: str
    name: Optional[str] = None


class UserProfile(CamelModel):
    id: str
    username: str
    name: Optional[str] = None
    need_change_password: bool
    role: str


class AuthResponse(CamelModel):
    """Returned by register and login. Tokens are also set as cookies on login."""

    message: str
    user: UserSummary
    access_token: str
    refresh_token: str


class RefreshResponse(CamelModel):
    success: bool = True
    message: str = "Token refreshed successfully"


# ---------------------------------------------------------------------------
# Annotation Schemas
# ---------------------------------------------------------------------------

class AnnotationSpan(CamelModel):
    """Character range inside a content block, addressed by element ids."""

    start_element: str = Field(..., min_length=1)
    start_offset: int = Field(..., ge=0)
    end_element: str = Field(..., min_length=1)
    end_offset: int = Field(..., ge=0)


class AnnotationCreateRequest(CamelModel):
    """Fields are optional here so the router can report missing ones together."""

    block_id: Optional[str] = None
    type: Optional[str] = None
    selected_text: Optional[str] = None
    result: Optional[str] = None
    span: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class SameRootWord(CamelModel):
    """A related word built on the same root."""

    word: str = Field(..., min_length=1)
    vi_meaning: str = Field(..., min_length=1)
    prefix_text: Optional[str] = None
    root_text: str = Field(..., min_length=1)
    connection: str = Field(..., min_length=1)


SAME_ROOT_COUNT = 5


class RootAnalysisResult(CamelModel):
    """Structured word-root analysis as produced by the model."""

    vi_meaning: str = Field(..., min_length=1)
    prefix_text: Optional[str] = None
    root_text: str = Field(..., min_length=1)
    connection: str = Field(..., min_length=1)
    same_root: List[SameRootWord] = Field(..., min_length=SAME_ROOT_COUNT, max_length=SAME_ROOT_COUNT)


class RootAnnotationRequest(CamelModel):
    block_id: str = Field(..., min_length=1)
    selected_text: str = Field(..., min_length=1, max_length=100)
    span: AnnotationSpan
    paragraph_content: str = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class WordrootRequest(CamelModel):
    selected_text: str = Field(..., min_length=1, max_length=100)
    paragraph_content: str = Field(..., min_length=1)


class RetryAnnotationRequest(CamelModel):
    sentence_id: Optional[str] = None
    text: Optional[str] = None


class AnnotationResponse(CamelModel):
    id: str
    article_id: str
    block_id: str
    type: str
    selected_text: str
    result: str
    span: Dict[str, Any]
    root_result: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_json")
    timestamp: datetime


class DeletedCount(CamelModel):
    count: int
    message: str


class RetryAnnotationResponse(CamelModel):
    success: bool = True
    data: str


# ---------------------------------------------------------------------------
# Article Schemas
# ---------------------------------------------------------------------------

class ArticleCreateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[Dict[str, Any]] = None


class ArticleUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[Dict[str, Any]] = None


class BlockUpdateRequest(CamelModel):
    block: Optional[Dict[str, Any]] = None


class GeneratedImageResponse(CamelModel):
    id: str
    paragraph_id: str
    article_id: str
    image_url: str
    prompt: str
    selected_text: str
    created_at: datetime


class ArticleResponse(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    content: Dict[str, Any]
    author_id: str
    created_at: datetime
    updated_at: datetime


class ArticleDetailResponse(ArticleResponse):
    """Article with its author, annotations and generated images."""

    author: Optional[UserSummary] = None
    annotations: List[AnnotationResponse] = []
    generated_images: List[GeneratedImageResponse] = []


class BlockUpdateResponse(CamelModel):
    id: str
    title: str
    content: Dict[str, Any]
    updated_at: datetime


class Pagination(CamelModel):
    page: int
    page_size: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_previous_page: bool


class ArticleListResponse(CamelModel):
    data: List[ArticleDetailResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Paragraph Schemas
# ---------------------------------------------------------------------------

class ParagraphCreateRequest(CamelModel):
    content: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)


class ParagraphUpdateRequest(CamelModel):
    content: Optional[str] = None


class SentenceResponse(CamelModel):
    id: str
    paragraph_id: str
    content: str
    order: int
    annotations: Optional[Dict[str, Any]] = None


class ParagraphResponse(CamelModel):
    id: str
    article_id: str
    content: str
    order: int
    created_at: datetime
    sentences: List[SentenceResponse] = []


# ---------------------------------------------------------------------------
# AI Assistant Schemas
# ---------------------------------------------------------------------------

class TranslateRequest(CamelModel):
    paragraph_markdown: Optional[str] = None
    full_context_with_target: Optional[str] = None


class SelectionRequest(CamelModel):
    """Selected text plus the paragraph it came from (grammar / explain)."""

    selected_text: Optional[str] = None
    paragraph_content: Optional[str] = None


class ChatMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(CamelModel):
    messages: Optional[List[ChatMessage]] = None


class GeminiRequest(CamelModel):
    prompt: Optional[str] = None
    paragraph_id: Optional[str] = None
    sentence_id: Optional[str] = None
    selected_text: Optional[str] = None


class GeminiResponse(CamelModel):
    data: str


class ParagraphImageRequest(CamelModel):
    paragraph_id: Optional[str] = None
    selected_text: Optional[str] = None
    full_context: Optional[str] = None


class ParagraphImageResponse(CamelModel):
    success: bool = True
    image_url: str


# ---------------------------------------------------------------------------
# Health Schemas
# ---------------------------------------------------------------------------

class HealthCheckResponse(CamelModel):
    status: str
    database: str
    gemini: str
    timestamp: datetime
