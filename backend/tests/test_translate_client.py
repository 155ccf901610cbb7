from unittest.mock import AsyncMock

import pytest

from tour_admin.core.translate_client import GoogleTranslateClient, TranslateAPIError


def test_api_key_required():
    with pytest.raises(ValueError):
        GoogleTranslateClient("")


@pytest.mark.asyncio
async def test_translate_request_body():
    client = GoogleTranslateClient("key", base_url="https://translate.test/v2/")
    client._post = AsyncMock(return_value={"data": {"translations": [{"translatedText": "Hola"}]}})

    assert await client.translate("Hello", "es", source="en") == "Hola"
    client._post.assert_awaited_once_with(
        "https://translate.test/v2", {"q": "Hello", "target": "es", "source": "en"}
    )


@pytest.mark.asyncio
async def test_translate_without_source_lets_provider_detect():
    client = GoogleTranslateClient("key")
    client._post = AsyncMock(return_value={"data": {"translations": [{"translatedText": "Hallo"}]}})

    await client.translate("Hello", "de")

    body = client._post.await_args.args[1]
    assert "source" not in body


@pytest.mark.asyncio
async def test_malformed_translate_response():
    client = GoogleTranslateClient("key")
    client._post = AsyncMock(return_value={"data": {}})

    with pytest.raises(TranslateAPIError):
        await client.translate("Hello", "de")


@pytest.mark.asyncio
async def test_detect():
    client = GoogleTranslateClient("key", base_url="https://translate.test/v2")
    client._post = AsyncMock(return_value={"data": {"detections": [[{"language": "ru"}]]}})

    assert await client.detect("Привет") == "ru"
    client._post.assert_awaited_once_with("https://translate.test/v2/detect", {"q": "Привет"})


@pytest.mark.asyncio
async def test_detect_without_result():
    client = GoogleTranslateClient("key")
    client._post = AsyncMock(return_value={"data": {"detections": []}})

    assert await client.detect("???") is None
