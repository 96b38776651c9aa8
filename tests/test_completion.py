"""
Tests for completion clients, provider selection and prompt construction.
"""
import ollama
import pytest

from medsafe.config import Settings
from medsafe.constants import CacheTTL
from medsafe.exceptions import UpstreamError
from medsafe.prompts import CRITICAL_AMPLIFIER, SAFETY_PREAMBLE, build_alternatives_prompt
from medsafe.services.completion import (
    GeminiCompletionClient, OllamaCompletionClient, create_completion_client,
)

from tests.fakes import make_record


class FakeOllama:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    async def chat(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.response


@pytest.mark.anyio
async def test_ollama_uses_json_mode_and_low_temperature():
    fake = FakeOllama(response={"message": {"content": " {\"confidence\": 0.5} "}})
    client = OllamaCompletionClient(model="llama3.1:8b", client=fake, temperature=0.2)
    assert await client.complete("prompt") == "{\"confidence\": 0.5}"
    assert fake.kwargs["format"] == "json"
    assert fake.kwargs["options"]["temperature"] == 0.2


@pytest.mark.anyio
@pytest.mark.parametrize("error", [ollama.ResponseError("model not found"), ConnectionRefusedError("refused")])
async def test_ollama_failures_become_upstream_errors(error):
    client = OllamaCompletionClient(client=FakeOllama(error=error))
    with pytest.raises(UpstreamError):
        await client.complete("prompt")


def test_temperature_is_capped():
    with pytest.raises(ValueError):
        OllamaCompletionClient(temperature=0.9)
    with pytest.raises(ValueError):
        Settings(LLM_TEMPERATURE=0.7)


def test_cache_ttl_defaults_come_from_constants():
    settings = Settings()
    assert settings.MEDICATION_CACHE_TTL_SECONDS == CacheTTL.MEDICATION
    assert settings.INTERACTION_CACHE_TTL_SECONDS == CacheTTL.INTERACTION_PAIR
    assert settings.LABEL_CACHE_TTL_SECONDS == CacheTTL.LABEL_TEXT
    assert settings.IDEMPOTENCY_TTL_SECONDS == CacheTTL.IDEMPOTENCY


def test_provider_selection():
    assert isinstance(create_completion_client(Settings(LLM_PROVIDER="ollama")), OllamaCompletionClient)
    assert isinstance(create_completion_client(Settings(LLM_PROVIDER="gemini")), GeminiCompletionClient)


def test_gemini_payload_carries_safety_settings():
    payload = GeminiCompletionClient(api_key="k", temperature=0.3)._payload("hello")
    thresholds = {s["threshold"] for s in payload["safetySettings"]}
    assert thresholds == {"BLOCK_MEDIUM_AND_ABOVE"}
    assert payload["generationConfig"]["temperature"] == 0.3


def test_prompt_for_critical_medication():
    prompt = build_alternatives_prompt(make_record("Warfarin"), ["Aspirin"])
    assert prompt.startswith(SAFETY_PREAMBLE)
    assert CRITICAL_AMPLIFIER.strip() in prompt
    assert "**Also taking**: Aspirin" in prompt
    assert "schemaVersion" in prompt


def test_prompt_for_supplement_has_no_amplifier():
    prompt = build_alternatives_prompt(make_record("Melatonin"))
    assert CRITICAL_AMPLIFIER.strip() not in prompt
    assert "Also taking" not in prompt
