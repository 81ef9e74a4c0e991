"""
Generative text collaborator.

Only ``generate(prompt) -> str`` is part of the contract; anything else a
generator does (HTTP, auth, quotas) stays behind it. Failures raise
``TextGenerationError`` and are absorbed by the notification dispatcher.
"""
import asyncio
import logging
from functools import partial
from typing import Any

import requests

from eduscan.errors import TextGenerationError

logger = logging.getLogger(__name__)


class TextGenerator:
    async def generate(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiTextGenerator(TextGenerator):
    """Google Gemini ``generateContent`` REST client."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        api_url: str,
        temperature: float = 0.7,
        max_output_tokens: int = 150,
        request_timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.request_timeout = request_timeout
        self.session = session or requests.Session()

    def _request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    @staticmethod
    def _extract_text(body: Any) -> str:
        try:
            parts = body["candidates"][0]["content"]["parts"]
            text = "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))
        except (KeyError, IndexError, TypeError) as e:
            raise TextGenerationError("Malformed response from text service", {"error": str(e)})
        text = text.strip()
        if not text:
            raise TextGenerationError("Text service returned an empty message")
        return text

    def generate_sync(self, prompt: str) -> str:
        url = self.api_url.format(model=self.model)
        try:
            response = self.session.post(
                url,
                params={"key": self.api_key},
                json=self._request_body(prompt),
                timeout=self.request_timeout,
            )
        except requests.RequestException as e:
            raise TextGenerationError(f"Text service unreachable: {e}")

        if response.status_code != 200:
            raise TextGenerationError(
                f"Text service returned HTTP {response.status_code}",
                {"status_code": response.status_code, "body": response.text[:200]},
            )

        try:
            body = response.json()
        except ValueError:
            raise TextGenerationError("Text service returned invalid JSON")
        return self._extract_text(body)

    async def generate(self, prompt: str) -> str:
        # requests is blocking; keep the event loop free for incoming scans.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self.generate_sync, prompt))
