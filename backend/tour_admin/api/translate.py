"""
Server-side proxy to the translation provider, so the API key never leaves the backend
"""

from typing import Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from tour_admin.api.schemas import TranslateRequest
from tour_admin.core.context import get_translator
from tour_admin.core.rate_limit import limiter, settings as limit_settings
from tour_admin.core.security import get_current_admin
from tour_admin.core.translation import TranslationError, TranslationPipeline

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["translation"], dependencies=[Depends(get_current_admin)])


@router.post("/translate",
    response_model=Dict[str, str],
    responses={
        200: {"description": "Text in every requested language"},
        400: {"description": "Text and target languages are required"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Translation provider not configured"}
    },
    summary="Translate text",
    description="Translate one text into several languages; a language that fails keeps the source text"
)
@limiter.limit(limit_settings.RATE_LIMIT_TRANSLATE)
async def translate_text(
    request: Request,
    payload: TranslateRequest,
    translator: TranslationPipeline = Depends(get_translator),
):
    if not payload.text or not payload.target_languages:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Text and target languages are required"
        )

    languages = [language.value for language in payload.target_languages]
    try:
        translations = await translator.translate_text(
            payload.text, languages, detect_language=payload.detect_language
        )
    except TranslationError as e:
        logger.error("translation_unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Google Translate API key not configured"
        )

    logger.info("text_translated", languages=languages, characters=len(payload.text))
    return translations
