"""Master prompt -> two render prompts via an OpenAI-compatible chat API.

The generated pair describes one UGC-style creator video split into two
10-second halves, so both halves must keep the same person and setting.
"""

import json
import logging

import httpx
from openai import AsyncOpenAI, OpenAIError

from stitchflow.errors.exceptions import PromptGenerationError
from stitchflow.integrations.adapters.base import PromptGenerator, PromptPair
from stitchflow.models.enums import RenderFormat

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a UGC (User Generated Content) creator making viral TikTok/Instagram Reels about tools and apps.

Take a MASTER PROMPT and write a natural, authentic 20-second video script:

1. Pick 2 specific, real tools from the master prompt's category (tool #2 first, the best one as #1 last).
2. Write the full 20-second script in first person, casual and enthusiastic ("literally", "honestly", "so"), about 60-70 words.
3. Split it into two 10-second parts: part 1 is the hook plus tool #2, part 2 is tool #1 plus the closing line.
4. For each part describe one scene: the SAME creator (young woman or young man, casual clothes, home setting, natural light) talking to camera the whole time, with a text overlay naming the tool ('#2 TOOL' then '#1 TOOL'). No screen recordings, no demonstrations.

The voiceover is exactly what the creator says in that part (about 30-35 words each).

Respond with JSON only:
{"prompt1": "...", "voiceover1": "...", "prompt2": "...", "voiceover2": "..."}"""

FORMAT_GUIDANCE = {
    RenderFormat.LANDSCAPE: (
        "LANDSCAPE (16:9): frame like horizontal YouTube content, creator centered "
        "with room for the text overlay."
    ),
    RenderFormat.PORTRAIT: (
        "PORTRAIT (9:16): frame for TikTok/Reels vertical format, creator fills "
        "the frame from chest up."
    ),
    RenderFormat.SQUARE: (
        "SQUARE (1:1): frame for the Instagram feed with the creator centered "
        "and balanced spacing."
    ),
}


def build_user_message(master_prompt: str, render_format: RenderFormat) -> str:
    guidance = FORMAT_GUIDANCE.get(render_format, "Use wide cinematic framing.")
    return (
        f'Master Prompt: "{master_prompt}"\n\n'
        f"{guidance}\n\n"
        "Same creator and setting in both prompts. Return prompt1, voiceover1, "
        "prompt2 and voiceover2 as JSON."
    )


def parse_prompt_pair(content: str) -> PromptPair:
    """Validate the model's JSON answer."""
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise PromptGenerationError(f"Prompt model returned invalid JSON: {exc}") from exc

    missing = [k for k in ("prompt1", "prompt2", "voiceover1", "voiceover2") if not data.get(k)]
    if missing:
        raise PromptGenerationError(f"Prompt model response missing {', '.join(missing)}")
    return PromptPair(
        prompt1=data["prompt1"],
        prompt2=data["prompt2"],
        voiceover1=data["voiceover1"],
        voiceover2=data["voiceover2"],
    )


class OpenAIPromptGenerator(PromptGenerator):
    """Chat completions in JSON mode through the ``openai`` SDK.

    Works against any OpenAI-compatible endpoint via ``base_url``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        temperature: float = 0.9,
        max_tokens: int = 1200,
        timeout: float = 60.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client: AsyncOpenAI | None = None
        if api_key:
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url.rstrip("/"),
                timeout=timeout,
                max_retries=max_retries,
                http_client=httpx.AsyncClient(transport=transport) if transport is not None else None,
            )

    async def generate(self, master_prompt: str, render_format: RenderFormat) -> PromptPair:
        if self._client is None:
            raise PromptGenerationError("Prompt generation is not configured")

        logger.info("Generating prompts from master prompt (format=%s)", render_format)
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_message(master_prompt, render_format)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise PromptGenerationError(f"Failed to generate prompts: {exc}") from exc

        if not response.choices or not response.choices[0].message.content:
            raise PromptGenerationError("Prompt model returned an empty response")

        pair = parse_prompt_pair(response.choices[0].message.content)
        logger.info(
            "Prompts generated (prompt1=%d chars, prompt2=%d chars)",
            len(pair.prompt1), len(pair.prompt2),
        )
        return pair
