"""Completion gateway: translation and conversation calls to the LLM provider."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from plyglot.chat.errors import ProviderError, ValidationError
from plyglot.chat.history import ConversationTurn
from plyglot.chat.languages import ResponseStyle, language_name
from plyglot.chat.prompts import build_conversation_messages, build_translation_messages
from plyglot.chat.providers import LLMRouter
from plyglot.chat.usage import RequestKind, UsageAccumulator, normalize_usage
from plyglot.shared.config import Settings
from plyglot.shared.logging_config import LogCategory, log_extra

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    """Generated text plus integer token usage, or ``None`` if none was reported."""

    text: str
    usage: dict | None


class CompletionGateway:
    """Turns chat requests into provider calls.

    The gateway validates input, picks the model and temperature, calls the
    provider and reports usage to the accumulator once per successful call.
    It never modifies the history it is given.
    """

    def __init__(
        self,
        router: LLMRouter,
        usage: UsageAccumulator,
        settings: Settings,
    ):
        self.router = router
        self.usage = usage
        self.settings = settings

    async def translate(
        self,
        message: str,
        target_language: str,
        style: ResponseStyle | str = ResponseStyle.NORMAL,
        model: str | None = None,
    ) -> CompletionResult:
        """Translate ``message`` into ``target_language``.

        Raises:
            ValidationError: Empty message, unsupported language or style.
            ProviderError: The provider call failed.
        """
        language, style = self._validate(message, target_language, style)
        messages = build_translation_messages(message, language, style)
        return await self._complete(
            messages,
            kind=RequestKind.TRANSLATION,
            style=style,
            model=model or self.settings.TRANSLATION_MODEL,
        )

    async def converse(
        self,
        message: str,
        target_language: str,
        style: ResponseStyle | str = ResponseStyle.NORMAL,
        history: Sequence[ConversationTurn] = (),
        model: str | None = None,
    ) -> CompletionResult:
        """Answer ``message`` in ``target_language`` with prior turns as context.

        Raises:
            ValidationError: Empty message, unsupported language or style.
            ProviderError: The provider call failed.
        """
        language, style = self._validate(message, target_language, style)
        messages = build_conversation_messages(message, language, style, history)
        return await self._complete(
            messages,
            kind=RequestKind.CONVERSATION,
            style=style,
            model=model or self.settings.CONVERSATION_MODEL,
        )

    def temperature_for(self, style: ResponseStyle) -> float:
        if style == ResponseStyle.POETIC:
            return self.settings.POETIC_TEMPERATURE
        return self.settings.NORMAL_TEMPERATURE

    def _validate(
        self, message: str, target_language: str, style: ResponseStyle | str
    ) -> tuple[str, ResponseStyle]:
        """Return the language name and parsed style, or raise ValidationError."""
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Message text is empty")
        if target_language not in self.settings.SUPPORTED_LANGUAGES:
            raise ValidationError(f"Unsupported language: {target_language!r}")
        try:
            style = ResponseStyle(style)
        except ValueError:
            raise ValidationError(f"Unknown response style: {style!r}")
        return language_name(target_language), style

    async def _complete(
        self,
        messages: list[dict],
        kind: RequestKind,
        style: ResponseStyle,
        model: str,
    ) -> CompletionResult:
        call = self.router.generate(
            messages,
            model=model,
            kind=kind.value,
            max_tokens=self.settings.MAX_COMPLETION_TOKENS,
            temperature=self.temperature_for(style),
        )

        start = time.perf_counter()
        try:
            if self.settings.PROVIDER_TIMEOUT_SECONDS:
                response = await asyncio.wait_for(
                    call, timeout=self.settings.PROVIDER_TIMEOUT_SECONDS
                )
            else:
                response = await call
        except asyncio.TimeoutError as e:
            raise ProviderError(f"{kind.value} call to {model} timed out") from e
        except Exception as e:
            raise ProviderError(f"{kind.value} call to {model} failed: {e}") from e
        duration_ms = int((time.perf_counter() - start) * 1000)

        if not isinstance(response.content, str):
            raise ProviderError(f"{kind.value} call to {model} returned no text")

        usage = normalize_usage(response.usage)
        logger.info(
            f"API call completed in {duration_ms}ms",
            extra=log_extra(LogCategory.API, usage=usage),
        )

        self.usage.record(usage, kind)
        return CompletionResult(text=response.content.strip(), usage=usage)
