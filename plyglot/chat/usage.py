"""Process-wide token usage accounting."""

import enum
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from plyglot.shared.logging_config import LogCategory, log_extra

logger = logging.getLogger(__name__)

USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens")


class RequestKind(str, enum.Enum):
    """Kinds of completion request tracked separately."""

    TRANSLATION = "translation"
    CONVERSATION = "conversation"


@dataclass(frozen=True)
class UsageSnapshot:
    """Read-only view of the usage counters."""

    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    translation_requests: int = 0
    conversation_requests: int = 0

    @property
    def total_requests(self) -> int:
        return self.translation_requests + self.conversation_requests

    @property
    def avg_tokens_per_request(self) -> str:
        """Average tokens per request with one decimal, "0" before any request."""
        if not self.total_requests:
            return "0"
        return f"{self.total_tokens / self.total_requests:.1f}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire field names."""
        return {
            "totalTokens": self.total_tokens,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "translationRequests": self.translation_requests,
            "conversationRequests": self.conversation_requests,
            "totalRequests": self.total_requests,
            "avgTokensPerRequest": self.avg_tokens_per_request,
        }


def _token_count(usage: Mapping[str, Any], key: str) -> int:
    """Read a token field, treating missing or non-numeric values as zero."""
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def normalize_usage(usage: Any) -> dict[str, int] | None:
    """Coerce provider usage to integer token counts.

    Missing or non-numeric fields become 0. Empty or non-mapping usage
    yields ``None``.
    """
    if not usage or not isinstance(usage, Mapping):
        return None
    return {key: _token_count(usage, key) for key in USAGE_FIELDS}


class UsageAccumulator:
    """Accumulates provider token usage for the lifetime of the process.

    ``record`` and ``snapshot`` share a lock, so a snapshot never observes a
    half-applied update.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters = UsageSnapshot()

    def record(self, usage: Mapping[str, Any] | None, kind: RequestKind | str) -> None:
        """Add one call's usage to the totals.

        Args:
            usage: Provider usage mapping with ``total_tokens``,
                ``prompt_tokens`` and ``completion_tokens``. ``None`` is a no-op.
            kind: Request kind. Unknown kinds still add tokens to the totals
                but do not increment either request counter.
        """
        usage = normalize_usage(usage)
        if usage is None:
            return

        try:
            kind = RequestKind(kind)
        except ValueError:
            logger.warning(f"Unknown usage kind {kind!r}; counting tokens only")

        total = usage["total_tokens"]
        prompt = usage["prompt_tokens"]
        completion = usage["completion_tokens"]

        with self._lock:
            current = self._counters
            self._counters = UsageSnapshot(
                total_tokens=current.total_tokens + total,
                prompt_tokens=current.prompt_tokens + prompt,
                completion_tokens=current.completion_tokens + completion,
                translation_requests=current.translation_requests
                + (kind == RequestKind.TRANSLATION),
                conversation_requests=current.conversation_requests
                + (kind == RequestKind.CONVERSATION),
            )
            updated = self._counters

        request_count = {
            RequestKind.TRANSLATION: updated.translation_requests,
            RequestKind.CONVERSATION: updated.conversation_requests,
        }.get(kind)
        request_type = getattr(kind, "value", kind)
        logger.debug(
            f"Tracked {total} tokens for {request_type}",
            extra=log_extra(
                LogCategory.USAGE,
                total_tokens=updated.total_tokens,
                request_type=request_type,
                request_count=request_count,
            ),
        )

    def snapshot(self) -> UsageSnapshot:
        """Return the current counters."""
        with self._lock:
            return self._counters

    def reset(self) -> None:
        """Zero all counters. Administrative use only."""
        with self._lock:
            self._counters = UsageSnapshot()
        logger.info("Usage counters reset", extra=log_extra(LogCategory.USAGE))
