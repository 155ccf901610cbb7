"""
Service context: the backend clients every router needs, built once at startup
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from tour_admin.core.security import IdentityProvider
from tour_admin.core.settings import Settings
from tour_admin.core.storage import ObjectStorage
from tour_admin.core.translate_client import GoogleTranslateClient
from tour_admin.core.translation import TranslationPipeline
from tour_admin.db.crud import DocumentStore
from tour_admin.db.session import DatabaseManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    db: DatabaseManager
    store: DocumentStore
    storage: ObjectStorage
    translator: TranslationPipeline
    identity: IdentityProvider
    translate_client: Optional[GoogleTranslateClient] = None

    @classmethod
    async def create(cls, settings: Settings) -> "ServiceContext":
        db = DatabaseManager(settings)
        await db.initialize()
        store = DocumentStore(db)

        translate_client = None
        if settings.GOOGLE_TRANSLATE_API_KEY:
            translate_client = GoogleTranslateClient(
                settings.GOOGLE_TRANSLATE_API_KEY,
                base_url=settings.TRANSLATE_API_URL,
            )
        else:
            logger.warning("GOOGLE_TRANSLATE_API_KEY not set, translation is disabled")

        return cls(
            settings=settings,
            db=db,
            store=store,
            storage=ObjectStorage(settings.MEDIA_ROOT, settings.MEDIA_BASE_URL),
            translator=TranslationPipeline(
                translate_client,
                detect_language=settings.TRANSLATE_DETECT_LANGUAGE,
            ),
            identity=IdentityProvider(store, settings),
            translate_client=translate_client,
        )

    async def close(self) -> None:
        if self.translate_client is not None:
            await self.translate_client.close()
        await self.db.close()


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


def get_store(context: ServiceContext = Depends(get_context)) -> DocumentStore:
    return context.store


def get_translator(context: ServiceContext = Depends(get_context)) -> TranslationPipeline:
    return context.translator


def get_settings(context: ServiceContext = Depends(get_context)) -> Settings:
    return context.settings
