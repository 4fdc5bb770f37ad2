"""LLM provider clients and model-based routing."""

import enum
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from plyglot.chat.usage import normalize_usage
from plyglot.shared.config import Settings, settings
from plyglot.shared.metrics import (
    LLM_COST_DOLLARS_TOTAL,
    LLM_REQUEST_DURATION_SECONDS,
    LLM_REQUESTS_TOTAL,
    LLM_TOKENS_TOTAL,
)

logger = logging.getLogger(__name__)


class LLMProvider(str, enum.Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str | None
    model: str
    provider: str
    usage: dict | None  # {"prompt_tokens": int, "completion_tokens": int, "total_tokens": int}
    cost_estimate: float = 0.0  # Estimated cost in USD


@dataclass
class ModelConfig:
    """Pricing for a known model."""

    provider: LLMProvider
    model_id: str
    cost_per_1m_input: float
    cost_per_1m_output: float


# Model registry
MODEL_REGISTRY: dict[str, ModelConfig] = {
    config.model_id: config
    for config in (
        ModelConfig(LLMProvider.OPENAI, "gpt-4", 30.00, 60.00),
        ModelConfig(LLMProvider.OPENAI, "gpt-4o", 2.50, 10.00),
        ModelConfig(LLMProvider.OPENAI, "gpt-4o-mini", 0.15, 0.60),
        ModelConfig(LLMProvider.OPENAI, "gpt-3.5-turbo", 0.50, 1.50),
        ModelConfig(LLMProvider.ANTHROPIC, "claude-haiku-4-5-20251001", 0.25, 1.25),
        ModelConfig(LLMProvider.ANTHROPIC, "claude-sonnet-4-5-20250929", 3.00, 15.00),
        ModelConfig(LLMProvider.GOOGLE, "gemini-2.0-flash", 0.10, 0.40),
        ModelConfig(LLMProvider.GOOGLE, "gemini-2.5-pro", 1.25, 10.00),
    )
}

# Model id prefixes for models missing from the registry
_PROVIDER_PREFIXES: tuple[tuple[str, LLMProvider], ...] = (
    ("gpt-", LLMProvider.OPENAI),
    ("o1", LLMProvider.OPENAI),
    ("o3", LLMProvider.OPENAI),
    ("claude", LLMProvider.ANTHROPIC),
    ("gemini", LLMProvider.GOOGLE),
)


class BaseLLMClient(ABC):
    """A provider SDK client created lazily from an API key."""

    def __init__(self, api_key: str = ""):
        self._api_key = api_key
        self._client = None

    def is_available(self) -> bool:
        """A client is usable once it has an API key."""
        return bool(self._api_key)

    def _sdk(self):
        if self._client is None:
            self._client = self._connect()
        return self._client

    @abstractmethod
    def _connect(self):
        """Build the SDK client."""

    @abstractmethod
    async def generate(
        self,
        messages: list[dict],
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Send OpenAI-style ``messages`` to ``model``."""


def _split_system_prompt(messages: list[dict]) -> tuple[str | None, list[dict]]:
    """Separate the system prompt from the user and assistant turns."""
    system_prompt = None
    turns = []
    for message in messages:
        if message["role"] == "system":
            system_prompt = message["content"]
        else:
            turns.append(message)
    return system_prompt, turns


def _usage(prompt_tokens: int, completion_tokens: int, total_tokens: int | None = None) -> dict:
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens if total_tokens is None else total_tokens,
    }


class OpenAIClient(BaseLLMClient):
    """OpenAI chat completions."""

    def _connect(self):
        from openai import AsyncOpenAI

        return AsyncOpenAI(api_key=self._api_key)

    async def generate(
        self,
        messages: list[dict],
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ) -> LLMResponse:
        response = await self._sdk().chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content,
            model=model,
            provider=LLMProvider.OPENAI.value,
            usage=_usage(usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)
            if usage
            else None,
        )


class AnthropicClient(BaseLLMClient):
    """Anthropic messages API. The system prompt travels as its own parameter."""

    def _connect(self):
        from anthropic import AsyncAnthropic

        return AsyncAnthropic(api_key=self._api_key)

    async def generate(
        self,
        messages: list[dict],
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ) -> LLMResponse:
        system_prompt, turns = _split_system_prompt(messages)
        request = {
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in turns],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_prompt:
            request["system"] = system_prompt

        response = await self._sdk().messages.create(**request)
        # Only text blocks carry the reply
        text = "".join(
            block.text
            for block in response.content or ()
            if isinstance(getattr(block, "text", None), str)
        )
        usage = response.usage
        return LLMResponse(
            content=text or None,
            model=model,
            provider=LLMProvider.ANTHROPIC.value,
            usage=_usage(usage.input_tokens, usage.output_tokens) if usage else None,
        )


class GeminiClient(BaseLLMClient):
    """Google Gemini. Assistant turns use Gemini's ``model`` role."""

    def _connect(self):
        from google import generativeai as genai

        genai.configure(api_key=self._api_key)
        return genai

    async def generate(
        self,
        messages: list[dict],
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ) -> LLMResponse:
        system_prompt, turns = _split_system_prompt(messages)
        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
            for m in turns
        ]

        model_obj = self._sdk().GenerativeModel(
            model_name=model,
            system_instruction=system_prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
        )
        response = await model_obj.generate_content_async(contents)

        try:
            text = response.text
        except ValueError:
            # Blocked or empty candidates
            text = None

        meta = getattr(response, "usage_metadata", None)
        return LLMResponse(
            content=text,
            model=model,
            provider=LLMProvider.GOOGLE.value,
            usage=_usage(
                getattr(meta, "prompt_token_count", 0) or 0,
                getattr(meta, "candidates_token_count", 0) or 0,
            )
            if meta
            else None,
        )


class LLMRouter:
    """Routes a request to the provider that serves the requested model."""

    def __init__(
        self,
        app_settings: Settings = settings,
        clients: dict[LLMProvider, BaseLLMClient] | None = None,
    ):
        self.settings = app_settings
        if clients is None:
            clients = {
                LLMProvider.OPENAI: OpenAIClient(app_settings.OPENAI_API_KEY),
                LLMProvider.ANTHROPIC: AnthropicClient(app_settings.ANTHROPIC_API_KEY),
                LLMProvider.GOOGLE: GeminiClient(app_settings.GOOGLE_API_KEY),
            }
        self._clients = clients

    def resolve_provider(self, model: str) -> LLMProvider:
        """Work out which provider serves a model id."""
        known = MODEL_REGISTRY.get(model)
        if known:
            return known.provider
        for prefix, provider in _PROVIDER_PREFIXES:
            if model.startswith(prefix):
                return provider
        return LLMProvider(self.settings.DEFAULT_LLM_PROVIDER)

    def is_configured(self, provider: LLMProvider) -> bool:
        client = self._clients.get(provider)
        return client is not None and client.is_available()

    def _get_client(self, provider: LLMProvider) -> BaseLLMClient:
        if not self.is_configured(provider):
            raise RuntimeError(
                f"LLM provider '{provider.value}' is not configured. "
                "Set the matching API key."
            )
        return self._clients[provider]

    def _calculate_cost(self, model: str, usage: dict | None) -> float:
        """Calculate estimated cost; unknown models cost nothing."""
        model_config = MODEL_REGISTRY.get(model)
        if model_config is None or not usage:
            return 0.0
        input_cost = (usage["prompt_tokens"] / 1_000_000) * model_config.cost_per_1m_input
        output_cost = (usage["completion_tokens"] / 1_000_000) * model_config.cost_per_1m_output
        return input_cost + output_cost

    async def generate(
        self,
        messages: list[dict],
        model: str,
        kind: str,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Send messages to the provider for ``model`` and record metrics."""
        provider = self.resolve_provider(model)
        client = self._get_client(provider)

        logger.debug(f"LLM Router: {kind} -> {provider.value}/{model}")

        start = time.perf_counter()
        response = await client.generate(messages, model, max_tokens, temperature)
        duration = time.perf_counter() - start

        response.usage = normalize_usage(response.usage)
        response.cost_estimate = self._calculate_cost(model, response.usage)

        LLM_REQUESTS_TOTAL.labels(provider=provider.value, model=model, kind=kind).inc()
        LLM_REQUEST_DURATION_SECONDS.labels(provider=provider.value, model=model).observe(
            duration
        )
        if response.usage:
            LLM_TOKENS_TOTAL.labels(provider=provider.value, model=model, type="input").inc(
                response.usage["prompt_tokens"]
            )
            LLM_TOKENS_TOTAL.labels(provider=provider.value, model=model, type="output").inc(
                response.usage["completion_tokens"]
            )
        LLM_COST_DOLLARS_TOTAL.labels(provider=provider.value, model=model).inc(
            response.cost_estimate
        )

        return response
