"""Per-connection conversation history."""

import enum
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

from plyglot.shared.logging_config import LogCategory, log_extra

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_LENGTH = 10

# Recently closed identities remembered so late writes can be dropped.
RETIRED_IDS_LIMIT = 1000


class Role(str, enum.Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in a conversation."""

    role: Role
    content: str

    def to_message(self) -> dict[str, str]:
        """Convert to an OpenAI-style chat message."""
        return {"role": self.role.value, "content": self.content}


class SessionHistoryStore:
    """Maps connection identities to bounded, ordered turn logs.

    Each identity is either absent or active. ``open``/``get`` make it active,
    ``close`` removes it. Callers receive copies; the live lists never leave
    the store.

    ``append_exchange`` drops writes for identities among the last
    ``RETIRED_IDS_LIMIT`` closed ones. Beyond that bound a late write opens a
    fresh history, so callers that outlive a connection must check it is
    still open before appending, as ``ConnectionRouter`` does.
    """

    def __init__(self, max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH):
        if max_history_length < 2:
            raise ValueError("max_history_length must be at least 2")
        self.max_history_length = max_history_length
        self._histories: dict[str, list[ConversationTurn]] = {}
        self._retired: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def open(self, connection_id: str) -> list[ConversationTurn]:
        """Create an empty history if none exists and return it."""
        with self._lock:
            return list(self._ensure(connection_id))

    def get(self, connection_id: str) -> list[ConversationTurn]:
        """Return the history for a connection, opening it if needed."""
        return self.open(connection_id)

    def append_exchange(
        self, connection_id: str, user_text: str, assistant_text: str
    ) -> bool:
        """Append a user turn and its assistant reply, then trim.

        Returns:
            False if the connection was already closed and the write was
            dropped, True otherwise.
        """
        with self._lock:
            if connection_id in self._retired:
                logger.debug(
                    f"Dropped late exchange for closed client {connection_id}",
                    extra=log_extra(LogCategory.HISTORY),
                )
                return False

            history = self._ensure(connection_id)
            history.append(ConversationTurn(Role.USER, user_text))
            history.append(ConversationTurn(Role.ASSISTANT, assistant_text))

            if len(history) > self.max_history_length:
                del history[: len(history) - self.max_history_length]
                logger.debug(
                    f"Trimmed chat history for client {connection_id} "
                    f"to {self.max_history_length} messages",
                    extra=log_extra(LogCategory.HISTORY),
                )
        return True

    def close(self, connection_id: str) -> None:
        """Discard a connection's history. Unknown identities are ignored."""
        with self._lock:
            removed = self._histories.pop(connection_id, None)
            self._retired[connection_id] = None
            while len(self._retired) > RETIRED_IDS_LIMIT:
                self._retired.popitem(last=False)

        if removed is not None:
            logger.debug(
                f"Removed chat history for client {connection_id}",
                extra=log_extra(LogCategory.HISTORY),
            )

    def exchange_count(self, connection_id: str) -> int:
        """Number of complete user/assistant pairs held for a connection."""
        with self._lock:
            return len(self._histories.get(connection_id, ())) // 2

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._histories

    def __len__(self) -> int:
        return len(self._histories)

    def _ensure(self, connection_id: str) -> list[ConversationTurn]:
        history = self._histories.get(connection_id)
        if history is None:
            # Explicit re-open of a closed identity starts a fresh session
            self._retired.pop(connection_id, None)
            history = self._histories[connection_id] = []
            logger.debug(
                f"Initialized empty chat history for client {connection_id}",
                extra=log_extra(LogCategory.HISTORY),
            )
        return history
