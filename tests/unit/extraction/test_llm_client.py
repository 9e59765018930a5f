"""Unit tests for the LLM provider clients."""

from unittest.mock import AsyncMock, patch

import pytest

from adjudicator.core.config import LLMSettings
from adjudicator.core.exceptions import APIClientError, ConfigurationError
from adjudicator.core.llm_client import OpenRouterClient, create_llm_client


class TestCreateLLMClient:
    def test_openrouter_provider(self):
        client = create_llm_client(LLMSettings(provider="openrouter", openrouter_api_key="key"))

        assert isinstance(client, OpenRouterClient)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_llm_client(LLMSettings(provider="carrier-pigeon"))


class TestOpenRouterClient:
    @pytest.fixture
    def client(self):
        return OpenRouterClient(api_key="key", model="google/gemini-2.5-flash", base_url="https://openrouter.test/chat")

    @pytest.mark.asyncio
    async def test_builds_multimodal_payload(self, client):
        reply = {"choices": [{"message": {"content": '{"document_type": "prescription"}'}}]}
        with patch.object(client.client, "call_api", new_callable=AsyncMock, return_value=reply) as mock_call:
            text = await client.generate_content(
                contents=["Classify this document", {"file_uri": "https://files.test/rx.jpg", "mime_type": "image/jpeg"}],
                system_instruction="You are an insurance document analyst",
                generation_config={"temperature": 0.0, "response_mime_type": "application/json"},
            )

        assert text == '{"document_type": "prescription"}'
        payload = mock_call.call_args.kwargs["payload"]
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["messages"][0] == {"role": "system", "content": "You are an insurance document analyst"}
        assert payload["messages"][1]["content"][1] == {
            "type": "image_url", "image_url": {"url": "https://files.test/rx.jpg"}
        }

    @pytest.mark.asyncio
    async def test_text_only_content_is_flattened(self, client):
        reply = {"choices": [{"message": {"content": "ok"}}]}
        with patch.object(client.client, "call_api", new_callable=AsyncMock, return_value=reply) as mock_call:
            await client.generate_content(contents=["part one, ", {"text": "part two"}])

        assert mock_call.call_args.kwargs["payload"]["messages"][0]["content"] == "part one, part two"

    @pytest.mark.asyncio
    async def test_missing_choices_raise(self, client):
        with patch.object(client.client, "call_api", new_callable=AsyncMock, return_value={"error": "busy"}):
            with pytest.raises(APIClientError):
                await client.generate_content(contents="hello")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("choice", [
        {"message": None},
        {"message": {"content": {"text": "nested"}}},
        "not-a-choice",
    ])
    async def test_malformed_choice_raises(self, client, choice):
        with patch.object(client.client, "call_api", new_callable=AsyncMock, return_value={"choices": [choice]}):
            with pytest.raises(APIClientError):
                await client.generate_content(contents="hello")
