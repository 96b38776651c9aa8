"""
Completion API clients.

Two providers share one contract: complete(prompt) returns the raw model
text, or raises UpstreamError when the call fails or is safety-blocked.
Timeouts are applied by the caller.

- Gemini: REST generateContent over aiohttp, safety filtering on
- Ollama: local inference through ollama.AsyncClient in JSON mode
"""
import asyncio
import logging
from typing import Dict, List, Optional

import aiohttp
import ollama

from medsafe.config import Settings
from medsafe.constants import Sources
from medsafe.exceptions import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

SAFETY_THRESHOLD = "BLOCK_MEDIUM_AND_ABOVE"
SAFETY_CATEGORIES = ("HARM_CATEGORY_DANGEROUS_CONTENT", "HARM_CATEGORY_HARASSMENT")


class CompletionClient:
    """Base class for completion providers."""

    name = "completion"

    def __init__(self, temperature: float = 0.3, max_output_tokens: int = 2048):
        if not 0.0 <= temperature <= 0.4:
            raise ValueError("temperature must be between 0.0 and 0.4")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def complete(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiCompletionClient(CompletionClient):
    """Google Gemini generateContent REST API."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 25.0,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _payload(self, prompt: str) -> Dict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "topK": 40,
                "topP": 0.8,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
            "safetySettings": [
                {"category": category, "threshold": SAFETY_THRESHOLD} for category in SAFETY_CATEGORIES
            ],
        }

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise UpstreamError(Sources.COMPLETION, "Gemini API key not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(url, params={"key": self.api_key}, json=self._payload(prompt)) as response:
                    if response.status != 200:
                        raise UpstreamError(Sources.COMPLETION, f"Gemini HTTP {response.status}")
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise UpstreamTimeout(Sources.COMPLETION, self.timeout)
        except aiohttp.ClientError as e:
            raise UpstreamError(Sources.COMPLETION, f"Gemini request failed: {e}")
        except ValueError as e:
            raise UpstreamError(Sources.COMPLETION, f"Gemini returned invalid JSON: {e}")

        return self.extract_text(data)

    @staticmethod
    def extract_text(data: Dict) -> str:
        """Pull the candidate text out of a generateContent response."""
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise UpstreamError(Sources.COMPLETION, f"prompt blocked by safety filter ({block_reason})")

        candidates: List[Dict] = data.get("candidates") or []
        if not candidates:
            raise UpstreamError(Sources.COMPLETION, "empty response from Gemini")

        candidate = candidates[0]
        if candidate.get("finishReason") == "SAFETY":
            raise UpstreamError(Sources.COMPLETION, "response blocked by safety filter")

        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts).strip()
        if not text:
            raise UpstreamError(Sources.COMPLETION, "empty response from Gemini")
        return text


class OllamaCompletionClient(CompletionClient):
    """Local inference via Ollama."""

    name = "ollama"

    def __init__(
        self,
        model: str = "llama3.1:8b",
        host: str = "http://localhost:11434",
        client: Optional[ollama.AsyncClient] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.model = model
        self.host = host
        self._client = client

    def _get_client(self) -> ollama.AsyncClient:
        """Lazy initialization of Ollama client."""
        if self._client is None:
            self._client = ollama.AsyncClient(host=self.host)
        return self._client

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._get_client().chat(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                format="json",
                options={
                    "temperature": self.temperature,
                    "top_p": 0.8,
                    "num_predict": self.max_output_tokens,
                },
            )
        except ollama.ResponseError as e:
            raise UpstreamError(Sources.COMPLETION, f"Ollama error: {e.error}")
        except OSError as e:
            raise UpstreamError(Sources.COMPLETION, f"Ollama unreachable: {e}")

        text = (response["message"]["content"] or "").strip()
        if not text:
            raise UpstreamError(Sources.COMPLETION, "empty response from Ollama")
        return text


def create_completion_client(settings: Settings) -> CompletionClient:
    """Build the provider selected by LLM_PROVIDER."""
    common = {
        "temperature": settings.LLM_TEMPERATURE,
        "max_output_tokens": settings.LLM_MAX_OUTPUT_TOKENS,
    }
    if settings.LLM_PROVIDER == "ollama":
        logger.info(f"Using Ollama completion model {settings.OLLAMA_MODEL}")
        return OllamaCompletionClient(model=settings.OLLAMA_MODEL, host=settings.OLLAMA_HOST, **common)

    logger.info(f"Using Gemini completion model {settings.GEMINI_MODEL}")
    return GeminiCompletionClient(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        base_url=settings.GEMINI_BASE_URL,
        timeout=settings.COMPLETION_TIMEOUT_SECONDS,
        **common,
    )
