# ============================================================================
# FILE: tests/unit/test_ai_enhancer.py
# ============================================================================
"""
Unit tests for the AI entity enhancer
"""

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp import test_utils

from medical_digitizer.extraction.ai_enhancer import (
    AIEnhancementConfig,
    EntityEnhancer,
    EntityResponse,
    build_prompt,
)
from medical_digitizer.utils.exceptions import EnhancementError


VALID_REPLY = {
    "names": ["Jane Doe"],
    "ages": ["34 years"],
    "dates": ["None"],
    "medications": ["paracetamol"],
    "symptoms": ["fever"],
    "vitals": ["None"],
    "addresses": ["None"],
    "phoneNumbers": ["None"],
}


def _enhancer_replying(content):
    enhancer = EntityEnhancer()

    async def mock_request(text, config):
        return content

    enhancer._request_completion = mock_request
    return enhancer


def test_build_prompt():
    prompt = build_prompt("Patient: Jane Doe")
    assert "Patient: Jane Doe" in prompt
    assert '"phoneNumbers"' in prompt
    assert '["None"]' in prompt
    assert "JSON" in prompt


def test_config_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        AIEnhancementConfig(endpoint="http://x", model="m", timeout=0)


def test_response_model_is_strict():
    EntityResponse.model_validate(VALID_REPLY)

    with pytest.raises(ValueError):
        EntityResponse.model_validate({**VALID_REPLY, "diagnoses": ["malaria"]})
    with pytest.raises(ValueError):
        EntityResponse.model_validate({k: v for k, v in VALID_REPLY.items() if k != "vitals"})
    with pytest.raises(ValueError):
        EntityResponse.model_validate({**VALID_REPLY, "ages": [34]})
    with pytest.raises(ValueError):
        EntityResponse.model_validate({**VALID_REPLY, "names": "Jane Doe"})


@pytest.mark.asyncio
async def test_enhance_valid_reply(ai_config):
    enhancer = _enhancer_replying(json.dumps(VALID_REPLY))

    entities = await enhancer.enhance("text", ai_config)

    assert entities.names == ["Jane Doe"]
    assert entities.medications == ["paracetamol"]
    # Sentinels are left for the merger to filter
    assert entities.phone_numbers == ["None"]


@pytest.mark.asyncio
async def test_enhance_rejects_malformed_json(ai_config):
    broken = "{'names': ['Jane Doe'], 'ages': [], 'dates': [], 'medications': [], " \
             "'symptoms': ['cough',], 'vitals': [], 'addresses': [], 'phoneNumbers': [],}"
    enhancer = _enhancer_replying(broken)

    with pytest.raises(EnhancementError):
        await enhancer.enhance("text", ai_config)


@pytest.mark.asyncio
async def test_enhance_rejects_trailing_comma(ai_config):
    enhancer = _enhancer_replying(json.dumps(VALID_REPLY)[:-1] + ",}")

    with pytest.raises(EnhancementError):
        await enhancer.enhance("text", ai_config)


@pytest.mark.asyncio
async def test_enhance_accepts_fenced_reply(ai_config):
    enhancer = _enhancer_replying("```json\n" + json.dumps(VALID_REPLY) + "\n```")

    entities = await enhancer.enhance("text", ai_config)

    assert entities.names == ["Jane Doe"]


@pytest.mark.asyncio
async def test_enhance_extracts_object_from_prose(ai_config):
    reply = dict(VALID_REPLY, symptoms=["pain {left side}"])
    enhancer = _enhancer_replying("Here are the entities: " + json.dumps(reply) + " Hope this helps.")

    entities = await enhancer.enhance("text", ai_config)

    assert entities.symptoms == ["pain {left side}"]


@pytest.mark.asyncio
async def test_enhance_rejects_wrong_shape(ai_config):
    enhancer = _enhancer_replying(json.dumps({"names": ["Jane Doe"]}))

    with pytest.raises(EnhancementError):
        await enhancer.enhance("text", ai_config)


@pytest.mark.asyncio
async def test_enhance_rejects_empty_reply(ai_config):
    enhancer = _enhancer_replying("   ")

    with pytest.raises(EnhancementError):
        await enhancer.enhance("text", ai_config)


@pytest.mark.asyncio
async def test_enhance_rejects_non_object(ai_config):
    enhancer = _enhancer_replying("[1, 2, 3]")

    with pytest.raises(EnhancementError):
        await enhancer.enhance("text", ai_config)


@pytest.mark.asyncio
async def test_enhance_timeout(ai_config):
    enhancer = EntityEnhancer()

    async def slow_request(text, config):
        await asyncio.sleep(5)
        return json.dumps(VALID_REPLY)

    enhancer._request_completion = slow_request
    config = ai_config.model_copy(update={"timeout": 0.05})

    with pytest.raises(EnhancementError) as exc_info:
        await enhancer.enhance("text", config)
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_enhance_against_chat_completions_server(ai_config):
    """Full HTTP round trip against a local chat-completions endpoint"""
    received = {}

    async def completions(request):
        received["auth"] = request.headers.get("Authorization")
        received["body"] = await request.json()
        return web.json_response({
            "choices": [{"message": {"role": "assistant", "content": json.dumps(VALID_REPLY)}}]
        })

    app = web.Application()
    app.router.add_post("/v1/chat/completions", completions)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        config = ai_config.model_copy(update={
            "endpoint": str(server.make_url("/v1/chat/completions")),
            "timeout": 5.0,
        })
        entities = await EntityEnhancer().enhance("Patient: Jane Doe, fever", config)
    finally:
        await server.close()

    assert entities.names == ["Jane Doe"]
    assert received["auth"] == "Bearer test-key"
    body = received["body"]
    assert body["model"] == "test-model"
    assert body["max_tokens"] == 500
    assert body["response_format"] == {"type": "json_object"}
    assert body["messages"][0]["role"] == "system"
    assert "Patient: Jane Doe, fever" in body["messages"][1]["content"]


@pytest.mark.asyncio
async def test_enhance_http_error_status(ai_config):
    async def completions(request):
        return web.Response(status=503, text="overloaded")

    app = web.Application()
    app.router.add_post("/v1/chat/completions", completions)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        config = ai_config.model_copy(update={
            "endpoint": str(server.make_url("/v1/chat/completions")),
            "timeout": 5.0,
        })
        with pytest.raises(EnhancementError) as exc_info:
            await EntityEnhancer().enhance("text", config)
    finally:
        await server.close()

    assert "503" in str(exc_info.value)
