"""
Shared text-generation helper for the exam engine.

Used by:
  - question_bank.py  (question extraction / generation)
  - grader.py         (judge calls for every grading strategy)

Talks to any OpenAI-compatible chat endpoint. The default base URL is
Gemini's OpenAI-compatible API, so model ids such as "gemini-2.0-flash"
work out of the box; override with LLM_BASE_URL / EXAM_MODEL_ID.
"""

import base64
import logging
from typing import List, Optional, Protocol

from openai import AsyncOpenAI

from exam_engine import config
from exam_engine.schemas import Attachment

log = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """The only contract the engine needs from the text-generation service."""

    async def generate(
        self,
        prompt: str,
        attachment: Optional[Attachment] = None,
        model_id: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        ...


# ─── Attachment encoding ───────────────────────────────────────────────────────

def _attachment_part(attachment: Attachment) -> dict:
    """Encode an attachment as one chat content part."""
    mime = attachment.mime_type or "application/octet-stream"
    if mime.startswith("text/"):
        body = attachment.data.decode("utf-8", errors="replace")
        return {"type": "text", "text": f"[Attached file: {attachment.name}]\n{body}"}

    encoded = base64.b64encode(attachment.data).decode("utf-8")
    data_url = f"data:{mime};base64,{encoded}"
    if mime.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": data_url}}
    return {"type": "file", "file": {"filename": attachment.name, "file_data": data_url}}


def build_messages(
    prompt: str,
    attachment: Optional[Attachment] = None,
    system_instruction: Optional[str] = None,
) -> List[dict]:
    messages: List[dict] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})

    if attachment is None:
        messages.append({"role": "user", "content": prompt})
    else:
        messages.append({
            "role": "user",
            "content": [_attachment_part(attachment), {"type": "text", "text": prompt}],
        })
    return messages


# ─── Client ────────────────────────────────────────────────────────────────────

class OpenAITextGenerator:
    """TextGenerator backed by AsyncOpenAI. The SDK client is created lazily."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        max_tokens: int = config.LLM_MAX_TOKENS_GENERATION,
    ):
        self._api_key = api_key
        self._base_url = base_url or config.LLM_BASE_URL
        self.default_model = default_model or config.DEFAULT_MODEL_ID
        self.max_tokens = max_tokens
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self._api_key or config.LLM_API_KEY
            if not api_key:
                raise RuntimeError(
                    "LLM_API_KEY is not set. Add it (or GOOGLE_API_KEY) to your .env file."
                )
            self._client = AsyncOpenAI(api_key=api_key, base_url=self._base_url)
        return self._client

    async def generate(
        self,
        prompt: str,
        attachment: Optional[Attachment] = None,
        model_id: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Send one prompt (plus optional attachment and system preamble).

        Returns:
            Raw text of the first choice; empty string when the model sent none.
        """
        client = self._get_client()
        model = model_id or self.default_model
        response = await client.chat.completions.create(
            model=model,
            messages=build_messages(prompt, attachment, system_instruction),
            temperature=config.LLM_TEMPERATURE_GENERATION if temperature is None else temperature,
            max_tokens=self.max_tokens,
        )
        text = response.choices[0].message.content or ""
        log.debug("LLM %s returned %d chars", model, len(text))
        return text


_default_generator: Optional[OpenAITextGenerator] = None


def get_text_generator() -> OpenAITextGenerator:
    """Process-wide default generator (lazy singleton)."""
    global _default_generator
    if _default_generator is None:
        _default_generator = OpenAITextGenerator()
    return _default_generator
