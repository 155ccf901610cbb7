"""
Article management endpoints
"""

import logging
from functools import partial

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import ValidationError

from tour_admin.api.listing import ListParams, delete_or_404, get_or_404, load_page
from tour_admin.api.schemas import (
    Article, ArticleForm, ArticleWrite, PageResponse, User, parse_document, to_document,
)
from tour_admin.core.context import get_settings, get_store, get_translator
from tour_admin.core.pagination import ListSource
from tour_admin.core.security import get_current_admin
from tour_admin.core.settings import Settings
from tour_admin.core.translation import ARTICLE_SHAPE, TranslationError, TranslationPipeline
from tour_admin.db.crud import DocumentStore
from tour_admin.db.models import Collection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/articles", tags=["articles"])

ARTICLES = Collection.ARTICLES.value

article_source = ListSource(
    collection=ARTICLES,
    parse=partial(parse_document, Article),
    search_text=lambda article: (article.title.en, article.title.uz, article.title.ru),
)


async def translate_article(form: ArticleForm, translator: TranslationPipeline) -> ArticleWrite:
    try:
        translated = await translator.translate_structure(
            form.model_dump(mode="json", by_alias=True, exclude_none=True), ARTICLE_SHAPE
        )
    except TranslationError as e:
        logger.error(f"Article translation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Translation failed, the article was not saved"
        )
    try:
        return ArticleWrite.model_validate(translated)
    except ValidationError as e:
        logger.error(f"Translated article failed validation: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Translated article is invalid"
        )


@router.get("",
    response_model=PageResponse[Article],
    responses={
        200: {"description": "One page of articles"},
        400: {"description": "Malformed cursor or sort field"},
        500: {"description": "Database error"}
    },
    summary="List articles"
)
async def list_articles(
    params: ListParams = Depends(),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    admin: User = Depends(get_current_admin),
):
    return await load_page(store, article_source, params, settings)


@router.get("/{article_id}", response_model=Article, summary="Get an article")
async def get_article(
    article_id: str,
    store: DocumentStore = Depends(get_store),
    admin: User = Depends(get_current_admin),
):
    return await get_or_404(store, ARTICLES, article_id, Article)


@router.post("",
    response_model=Article,
    status_code=status.HTTP_201_CREATED,
    responses={
        422: {"description": "Title and description are required"},
        502: {"description": "Translation failed, nothing was saved"}
    },
    summary="Create an article",
    description="Translate title and description into all supported languages and publish the article under the current admin"
)
async def create_article(
    form: ArticleForm,
    store: DocumentStore = Depends(get_store),
    translator: TranslationPipeline = Depends(get_translator),
    admin: User = Depends(get_current_admin),
):
    article = await translate_article(form, translator)
    payload = {**to_document(article), "likes": 0, "views": 0, "authorId": admin.id}
    snapshot = await store.add(ARTICLES, payload)
    logger.info(f"Admin {admin.id} created article {snapshot.id}")
    return parse_document(Article, snapshot)


@router.put("/{article_id}",
    response_model=Article,
    responses={
        404: {"description": "Article not found"},
        502: {"description": "Translation failed, nothing was saved"}
    },
    summary="Edit an article",
    description="Re-translate the edited source text; counters and creation date are kept"
)
async def update_article(
    article_id: str,
    form: ArticleForm,
    store: DocumentStore = Depends(get_store),
    translator: TranslationPipeline = Depends(get_translator),
    admin: User = Depends(get_current_admin),
):
    existing = await get_or_404(store, ARTICLES, article_id, Article)
    article = await translate_article(form, translator)

    payload = {
        **to_document(article),
        "likes": existing.likes,
        "views": existing.views,
        "authorId": existing.author_id or admin.id,
    }
    snapshot = await store.set(ARTICLES, article_id, payload)
    logger.info(f"Admin {admin.id} updated article {article_id}")
    return parse_document(Article, snapshot)


@router.delete("/{article_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Article not found"}},
    summary="Delete an article"
)
async def delete_article(
    article_id: str,
    store: DocumentStore = Depends(get_store),
    admin: User = Depends(get_current_admin),
):
    await delete_or_404(store, ARTICLES, article_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
