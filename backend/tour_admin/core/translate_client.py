"""
Google Translate v2 client
"""

import logging
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class TranslateAPIError(RuntimeError):
    def __init__(self, status: int, message: str):
        super().__init__(f"Translate API returned {status}: {message}")
        self.status = status


class GoogleTranslateClient:
    """Thin async wrapper over the detect and translate endpoints"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://translation.googleapis.com/language/translate/v2",
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.post(url, params={"key": self.api_key}, json=body) as response:
            if response.status != 200:
                text = await response.text()
                raise TranslateAPIError(response.status, text[:200])
            return await response.json()

    async def detect(self, text: str) -> Optional[str]:
        """Detected provider language code, or None when the provider has no guess"""
        result = await self._post(f"{self.base_url}/detect", {"q": text})
        try:
            language = result["data"]["detections"][0][0]["language"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Detect response had no detections")
            return None
        logger.debug(f"Detected source language: {language}")
        return language

    async def translate(self, text: str, target: str, source: Optional[str] = None) -> str:
        body = {"q": text, "target": target}
        if source:
            body["source"] = source
        result = await self._post(self.base_url, body)
        try:
            return result["data"]["translations"][0]["translatedText"]
        except (KeyError, IndexError, TypeError) as e:
            raise TranslateAPIError(200, "Malformed translate response") from e
