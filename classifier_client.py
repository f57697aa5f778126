"""
External Classifier Client.

Wraps the OpenAI Responses API (or Azure OpenAI with DefaultAzureCredential)
behind a single call: classify(system_prompt, payload) -> dict | None.

None means "unavailable": the client is not configured, the request failed
or timed out, or the output was not parseable JSON. Callers use their local
fallback in that case; nothing is retried.
"""

import json
import logging
from typing import Any, Dict, Optional

from azure.identity import DefaultAzureCredential, get_bearer_token_provider
from openai import AsyncAzureOpenAI, AsyncOpenAI

from config import Settings

logger = logging.getLogger(__name__)


def normalize_azure_endpoint(endpoint: str) -> str:
    """Strip the /openai/v1 suffix and trailing slashes from an Azure endpoint."""
    azure_endpoint = endpoint
    if azure_endpoint.endswith("/openai/v1"):
        azure_endpoint = azure_endpoint.replace("/openai/v1", "")
    elif azure_endpoint.endswith("/openai/v1/"):
        azure_endpoint = azure_endpoint.replace("/openai/v1/", "")
    if azure_endpoint.endswith("/"):
        azure_endpoint = azure_endpoint[:-1]
    return azure_endpoint


def parse_json(content: str) -> Any:
    """Parse JSON from model output, handling code blocks and surrounding prose."""
    content = content.strip()

    # Extract from code block if present
    if content.startswith("```"):
        parts = content.split("```")
        if len(parts) >= 2:
            content = parts[1]
            if content.startswith(("json", "JSON")):
                content = content[4:]
            content = content.strip()

    # Try parsing as-is first
    try:
        return json.loads(content)
    except ValueError:
        pass

    # Try the outermost object
    start = content.find("{")
    end = content.rfind("}")
    if start >= 0 and end > start:
        return json.loads(content[start:end + 1])

    raise json.JSONDecodeError(
        f"Could not parse JSON. Last 500 chars: {content[-500:]}",
        content,
        len(content) - 1 if content else 0
    )


class ClassifierClient:
    """
    Strict-JSON model calls with fallback semantics.

    Built once at the composition root and injected into services. Pass
    ``client=None`` (or leave the API key and endpoint empty) to run fully on
    local heuristics.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        model: str,
        timeout_seconds: float = 20.0,
    ):
        self._client = client
        self.model = model
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClassifierClient":
        """Create the client described by the settings (OpenAI, Azure OpenAI or none)."""
        if settings.azure_openai_endpoint:
            azure_endpoint = normalize_azure_endpoint(settings.azure_openai_endpoint)
            if settings.openai_api_key:
                client = AsyncAzureOpenAI(
                    azure_endpoint=azure_endpoint,
                    api_key=settings.openai_api_key,
                    api_version=settings.azure_openai_api_version,
                    timeout=settings.classifier_timeout_seconds,
                    max_retries=0,
                )
            else:
                # Managed identity / Azure CLI credentials
                token_provider = get_bearer_token_provider(
                    DefaultAzureCredential(),
                    "https://cognitiveservices.azure.com/.default"
                )
                client = AsyncAzureOpenAI(
                    azure_endpoint=azure_endpoint,
                    azure_ad_token_provider=token_provider,
                    api_version=settings.azure_openai_api_version,
                    timeout=settings.classifier_timeout_seconds,
                    max_retries=0,
                )
            logger.info(f"AsyncAzureOpenAI classifier initialized: {azure_endpoint}")
            return cls(client, settings.azure_openai_deployment, settings.classifier_timeout_seconds)

        if settings.openai_api_key:
            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.classifier_timeout_seconds,
                max_retries=0,
            )
            logger.info(f"OpenAI classifier initialized with model={settings.openai_model}")
            return cls(client, settings.openai_model, settings.classifier_timeout_seconds)

        logger.warning("No OpenAI credentials configured; classifier runs on local heuristics only")
        return cls(None, settings.openai_model, settings.classifier_timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def classify(self, system_prompt: str, payload: Dict[str, Any]) -> Optional[Any]:
        """
        Run one strict-JSON model call.

        Returns:
            The parsed JSON value, or None when the classifier is unavailable
        """
        if self._client is None:
            logger.warning("[classifier] client not configured, using fallback")
            return None

        try:
            response = await self._client.responses.create(
                model=self.model,
                input=[
                    {"role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
                    {"role": "user", "content": [{"type": "input_text", "text": json.dumps(payload, default=str)}]},
                ],
            )
            text = response.output_text
        except Exception as e:
            # Includes Azure credential provider errors
            logger.warning(f"[classifier] request failed, using fallback: {type(e).__name__}: {e}")
            return None

        if not text:
            logger.warning("[classifier] empty response, using fallback")
            return None

        try:
            return parse_json(text)
        except (ValueError, RecursionError):
            logger.warning("[classifier] response parse failed, using fallback")
            return None

    async def close(self):
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None
