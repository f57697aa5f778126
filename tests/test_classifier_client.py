"""Tests for the external classifier client."""
import json
from types import SimpleNamespace

import pytest
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import CredentialUnavailableError
from openai import OpenAIError

from classifier_client import ClassifierClient, normalize_azure_endpoint, parse_json
from tests.conftest import make_settings


def fake_openai(output_text=None, error=None):
    """Stand-in for AsyncOpenAI exposing responses.create and close."""
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(output_text=output_text)

    async def close():
        pass

    client = SimpleNamespace(responses=SimpleNamespace(create=create), close=close)
    return client, calls


class TestParseJson:
    def test_plain_object(self):
        assert parse_json('{"category": "sizing"}') == {"category": "sizing"}

    def test_code_block(self):
        assert parse_json('```json\n{"confidence": 0.8}\n```') == {"confidence": 0.8}

    def test_surrounding_prose(self):
        assert parse_json('Here you go: {"impactNote": "ok"} Thanks!') == {"impactNote": "ok"}

    def test_unparseable_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json("no json here")


class TestNormalizeAzureEndpoint:
    @pytest.mark.parametrize("endpoint", [
        "https://demo.openai.azure.com/openai/v1",
        "https://demo.openai.azure.com/openai/v1/",
        "https://demo.openai.azure.com/",
        "https://demo.openai.azure.com",
    ])
    def test_strips_suffixes(self, endpoint):
        assert normalize_azure_endpoint(endpoint) == "https://demo.openai.azure.com"


class TestClassify:
    async def test_unconfigured_returns_none(self):
        client = ClassifierClient(None, "gpt-test")
        assert client.is_configured is False
        assert await client.classify("prompt", {"reasonText": "too small"}) is None

    async def test_parsed_output(self):
        openai_client, calls = fake_openai(output_text='```json\n{"category": "quality"}\n```')
        client = ClassifierClient(openai_client, "gpt-test")

        result = await client.classify("system prompt", {"reasonText": "broken zipper"})

        assert result == {"category": "quality"}
        assert calls[0]["model"] == "gpt-test"
        system, user = calls[0]["input"]
        assert system["content"][0]["text"] == "system prompt"
        assert json.loads(user["content"][0]["text"]) == {"reasonText": "broken zipper"}

    @pytest.mark.parametrize("error", [
        OpenAIError("timeout"),
        ClientAuthenticationError("no credential"),
        CredentialUnavailableError("no managed identity"),
        RuntimeError("connection reset"),
    ])
    async def test_request_failure_returns_none(self, error, caplog):
        openai_client, _ = fake_openai(error=error)
        client = ClassifierClient(openai_client, "gpt-test")

        assert await client.classify("prompt", {}) is None
        assert "request failed, using fallback" in caplog.text

    @pytest.mark.parametrize("text", [
        "",
        None,
        "definitely not json",
        '{"confidence": 1' + "0" * 5000 + "}",
        "[" * 100000 + "]" * 100000,
    ])
    async def test_bad_output_returns_none(self, text):
        openai_client, _ = fake_openai(output_text=text)
        client = ClassifierClient(openai_client, "gpt-test")
        assert await client.classify("prompt", {}) is None

    async def test_close_is_idempotent(self):
        openai_client, _ = fake_openai(output_text="{}")
        client = ClassifierClient(openai_client, "gpt-test")
        await client.close()
        await client.close()
        assert client.is_configured is False


class TestFromSettings:
    def test_no_credentials_runs_locally(self):
        client = ClassifierClient.from_settings(make_settings())
        assert client.is_configured is False

    def test_openai_key(self):
        client = ClassifierClient.from_settings(make_settings(openai_api_key="sk-test", openai_model="gpt-test"))
        assert client.is_configured is True
        assert client.model == "gpt-test"

    def test_azure_endpoint_with_key_uses_deployment(self):
        client = ClassifierClient.from_settings(make_settings(
            openai_api_key="azure-key",
            azure_openai_endpoint="https://demo.openai.azure.com/openai/v1",
            azure_openai_deployment="returns-gpt",
        ))
        assert client.is_configured is True
        assert client.model == "returns-gpt"
