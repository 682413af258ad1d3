import asyncio
import base64
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from photodesk.domain.errors import InputValidationError, RemoteServiceError
from photodesk.domain.interfaces import ImageTransform
from photodesk.domain.models import EncodedImage
from photodesk.services.ai.client import GenerativeImageClient, extract_inline_image
from photodesk.services.ai.removebg import RemoveBgClient
from photodesk.services.ai.service import AIService

SOURCE = EncodedImage(mime_type="image/png", payload=b"source-bytes")


def _image_response(payload=b"result-bytes", mime_type="image/png"):
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here is your photo"},
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(payload).decode()}},
                    ]
                }
            }
        ]
    }


def _generate(handler, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GenerativeImageClient(
                api_key="test-key",
                model="image-model",
                base_url="https://models.example/v1beta",
                backoff=0,
                http_client=http_client,
                **kwargs,
            )
            return await client.generate("make it nice", SOURCE, operation="enhance_face")

    return asyncio.run(run())


def test_generate_returns_inline_image():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_image_response())

    result = _generate(handler)

    assert result == EncodedImage(mime_type="image/png", payload=b"result-bytes")
    request = seen[0]
    assert request.url.path == "/v1beta/models/image-model:generateContent"
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    parts = body["contents"][0]["parts"]
    assert parts[0]["text"] == "make it nice"
    assert parts[1]["inline_data"] == {"mime_type": "image/png", "data": SOURCE.to_base64()}
    assert body["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]


def test_generate_without_image_part_fails():
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]})

    with pytest.raises(RemoteServiceError) as exc:
        _generate(handler)
    assert exc.value.operation == "enhance_face"
    assert "no image" in str(exc.value)


def test_generate_retries_transient_status():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="overloaded")
        return httpx.Response(200, json=_image_response())

    result = _generate(handler, retries=3)
    assert result.payload == b"result-bytes"
    assert len(calls) == 2


def test_generate_retries_transport_errors_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteServiceError):
        _generate(handler, retries=2)
    assert len(calls) == 2


def test_generate_does_not_retry_client_errors():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "bad request"}})

    with pytest.raises(RemoteServiceError):
        _generate(handler, retries=3)
    assert len(calls) == 1


def test_generate_requires_api_key():
    client = GenerativeImageClient(api_key="")
    with pytest.raises(RemoteServiceError):
        asyncio.run(client.generate("prompt", SOURCE))


def test_extract_inline_image_snake_case():
    data = {"candidates": [{"content": {"parts": [{"inline_data": {"mime_type": "image/jpeg", "data": "AAAA"}}]}}]}
    image = extract_inline_image(data)
    assert image.mime_type == "image/jpeg"
    assert extract_inline_image({}) is None


def _removebg(handler, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = RemoveBgClient(api_key="rbg-key", url="https://bg.example/removebg", http_client=http_client, **kwargs)
            return await client(SOURCE)

    return asyncio.run(run())


def test_removebg_success(make_encoded):
    cutout = make_encoded(4, 4, (0, 0, 0, 0))
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=cutout.payload, headers={"content-type": "image/png"})

    result = _removebg(handler)

    assert result.mime_type == "image/png"
    assert result.payload == cutout.payload
    assert seen[0].headers["x-api-key"] == "rbg-key"
    assert b"image_file_b64=" in seen[0].content


def test_removebg_reports_api_errors():
    def handler(request):
        return httpx.Response(402, json={"errors": [{"title": "Insufficient credits"}]})

    with pytest.raises(RemoteServiceError) as exc:
        _removebg(handler)
    assert "Insufficient credits" in str(exc.value)


def test_removebg_timeout():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(RemoteServiceError) as exc:
        _removebg(handler)
    assert "timed out" in str(exc.value)


def test_removebg_non_image_response():
    def handler(request):
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(RemoteServiceError):
        _removebg(handler)


def test_removebg_rejects_non_image_input():
    with pytest.raises(InputValidationError):
        RemoveBgClient.validate(EncodedImage(mime_type="text/plain", payload=b"hello"))


class TestAIService:
    def test_routes_background_removal_to_removebg(self):
        client = MagicMock(spec=GenerativeImageClient)
        client.generate = AsyncMock()
        removebg = AsyncMock(return_value=EncodedImage("image/png", b"cut"))
        service = AIService(client=client, removebg=removebg, background_backend="removebg")

        result = asyncio.run(service.remove_background(SOURCE))

        assert result.payload == b"cut"
        removebg.assert_awaited_once_with(SOURCE)
        client.generate.assert_not_awaited()

    def test_edit_operations_use_generative_client(self):
        client = MagicMock(spec=GenerativeImageClient)
        client.generate = AsyncMock(return_value=EncodedImage("image/png", b"edited"))
        service = AIService(client=client, background_backend="gemini")

        for operation in ("remove_background", "enhance_face", "remove_blemishes", "upscale", "correct_color"):
            transform = service.transform(operation)
            assert isinstance(transform, ImageTransform)
            assert asyncio.run(transform(SOURCE)).payload == b"edited"
            assert client.generate.await_args.kwargs["operation"] == operation

    def test_generate_background_is_text_only(self):
        client = MagicMock(spec=GenerativeImageClient)
        client.generate = AsyncMock(return_value=EncodedImage("image/png", b"bg"))
        service = AIService(client=client, background_backend="gemini")

        asyncio.run(service.generate_background("a sunny beach"))

        args = client.generate.await_args
        assert "a sunny beach" in args.args[0]
        assert len(args.args) == 1

        with pytest.raises(InputValidationError):
            asyncio.run(service.generate_background("   "))

    def test_rejects_unknown_backend_and_operation(self):
        client = MagicMock(spec=GenerativeImageClient)
        with pytest.raises(InputValidationError):
            AIService(client=client, background_backend="magic")
        service = AIService(client=client, background_backend="gemini")
        with pytest.raises(InputValidationError):
            service.transform("make_taller")
