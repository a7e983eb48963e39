"""Tests for master prompt expansion."""

import json

import httpx
import pytest

from stitchflow.errors.exceptions import PromptGenerationError
from stitchflow.models.enums import RenderFormat
from stitchflow.services.prompt_generation import (
    OpenAIPromptGenerator,
    build_user_message,
    parse_prompt_pair,
)

PAIR = {
    "prompt1": "creator holds phone, '#2 NOTION' overlay",
    "voiceover1": "so honestly notion changed my life",
    "prompt2": "same creator, '#1 LINEAR' overlay",
    "voiceover2": "but linear is literally the best",
}


def _completion(content: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [
            {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}
        ],
    }


def test_user_message_includes_format_guidance():
    message = build_user_message("productivity apps", RenderFormat.PORTRAIT)
    assert '"productivity apps"' in message
    assert "PORTRAIT (9:16)" in message


def test_parse_prompt_pair_requires_all_keys():
    pair = parse_prompt_pair(json.dumps(PAIR))
    assert pair.prompts == [PAIR["prompt1"], PAIR["prompt2"]]

    with pytest.raises(PromptGenerationError, match="voiceover2"):
        parse_prompt_pair(json.dumps({k: v for k, v in PAIR.items() if k != "voiceover2"}))
    with pytest.raises(PromptGenerationError, match="invalid JSON"):
        parse_prompt_pair("not json")


@pytest.mark.asyncio
async def test_generate_calls_chat_completions():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json=_completion(json.dumps(PAIR)))

    generator = OpenAIPromptGenerator(
        api_key="sk-test",
        max_retries=0,
        base_url="https://llm.test/v1",
        transport=httpx.MockTransport(handler),
    )
    pair = await generator.generate("productivity apps", RenderFormat.SQUARE)

    assert pair.voiceover2 == PAIR["voiceover2"]
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert seen["body"]["messages"][0]["role"] == "system"
    assert seen["auth"] == "Bearer sk-test"


@pytest.mark.asyncio
async def test_generate_http_failure():
    generator = OpenAIPromptGenerator(
        api_key="sk-test",
        max_retries=0,
        transport=httpx.MockTransport(lambda r: httpx.Response(429, json={"error": "rate limited"})),
    )
    with pytest.raises(PromptGenerationError):
        await generator.generate("apps", RenderFormat.LANDSCAPE)


@pytest.mark.asyncio
async def test_generate_requires_api_key():
    with pytest.raises(PromptGenerationError, match="not configured"):
        await OpenAIPromptGenerator(api_key="").generate("apps", RenderFormat.LANDSCAPE)


@pytest.mark.asyncio
async def test_generate_empty_answer():
    generator = OpenAIPromptGenerator(
        api_key="sk-test",
        max_retries=0,
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json=_completion(""))),
    )
    with pytest.raises(PromptGenerationError, match="empty response"):
        await generator.generate("apps", RenderFormat.LANDSCAPE)
