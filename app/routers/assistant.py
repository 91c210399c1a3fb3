"""
AI reading assistant endpoints for an article.

The streaming endpoints answer with NDJSON: one ``{"chunk": "..."}`` object
per line while the model is generating, and an ``{"error": "..."}`` line
when generation could not complete.

Route summary
-------------
POST /api/articles/{article_id}/translate   translate a paragraph (stream)
POST /api/articles/{article_id}/grammar     grammar notes for a selection (stream)
POST /api/articles/{article_id}/explain     explain a selection (stream)
POST /api/articles/{article_id}/chat        chat about the article (stream)
POST /api/articles/{article_id}/wordroot    word-root analysis, not stored
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.dependencies.auth import get_readable_article
from app.exceptions import ApiError
from app.models.database_models import Article
from app.models.schemas import (
    ChatRequest,
    DataResponse,
    RootAnalysisResult,
    SelectionRequest,
    TranslateRequest,
    WordrootRequest,
)
from app.services.gemini import GeminiClient, GeminiError, get_gemini_client
from app.services.prompts import (
    chat_prompt,
    explain_prompt,
    grammar_prompt,
    root_analysis_prompt,
    translate_prompt,
)
from app.services.root_analysis import parse_root_analysis

logger = logging.getLogger(__name__)

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def _ndjson_response(gemini: GeminiClient, prompt: str) -> StreamingResponse:
    return StreamingResponse(
        gemini.stream_text(prompt),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache"},
    )


def _require_selection(body: SelectionRequest) -> None:
    if not body.selected_text or not body.paragraph_content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Selected text and paragraph content are required",
        )


@router.post("/translate")
async def translate(
    body: TranslateRequest,
    article: Article = Depends(get_readable_article),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> StreamingResponse:
    """Stream a translation of one paragraph, using the rest of the article as context."""
    if not body.paragraph_markdown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Paragraph markdown content is required",
        )

    logger.info("Translating paragraph of article=%s", article.id)
    return _ndjson_response(
        gemini, translate_prompt(body.paragraph_markdown, body.full_context_with_target)
    )


@router.post("/grammar")
async def grammar(
    body: SelectionRequest,
    article: Article = Depends(get_readable_article),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> StreamingResponse:
    _require_selection(body)
    return _ndjson_response(gemini, grammar_prompt(body.selected_text, body.paragraph_content))


@router.post("/explain")
async def explain(
    body: SelectionRequest,
    article: Article = Depends(get_readable_article),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> StreamingResponse:
    _require_selection(body)
    return _ndjson_response(gemini, explain_prompt(body.selected_text, body.paragraph_content))


@router.post("/chat")
async def chat(
    body: ChatRequest,
    article: Article = Depends(get_readable_article),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> StreamingResponse:
    """Stream the assistant's next turn for the conversation so far."""
    if not body.messages:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Messages are required",
        )
    return _ndjson_response(gemini, chat_prompt(body.messages))


@router.post("/wordroot", response_model=DataResponse[RootAnalysisResult])
async def wordroot(
    body: WordrootRequest,
    article: Article = Depends(get_readable_article),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> DataResponse[RootAnalysisResult]:
    """
    Analyse the root of the selected word and return it without storing an
    annotation.  Malformed model output is a 500 with details.
    """
    prompt = root_analysis_prompt(body.selected_text, body.paragraph_content)
    try:
        ai_response = await gemini.generate_text(prompt)
    except GeminiError as exc:
        logger.error("Root analysis generation failed: %s", exc)
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to generate root analysis",
            details=[str(exc)],
        )

    analysis = parse_root_analysis(ai_response, body.selected_text)
    return DataResponse[RootAnalysisResult](
        data=analysis,
        message="Root analysis completed successfully",
    )
