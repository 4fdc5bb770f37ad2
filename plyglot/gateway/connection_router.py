"""Connection lifecycle and event dispatch for chat clients."""

import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from plyglot.chat.errors import ChatError, StateError, ValidationError
from plyglot.chat.gateway import CompletionGateway, CompletionResult
from plyglot.chat.history import SessionHistoryStore
from plyglot.chat.languages import InteractionMode
from plyglot.chat.usage import UsageAccumulator
from plyglot.shared.logging_config import LogCategory, log_extra
from plyglot.shared.metrics import CHAT_MESSAGES_TOTAL
from plyglot.shared.schemas import (
    ChatMessagePayload,
    ChatResponsePayload,
    ErrorPayload,
    SettingsChangePayload,
    SwitchModePayload,
    TokenUsage,
    UsageStatsResponse,
)

logger = logging.getLogger(__name__)

# Inbound events
CHAT_MESSAGE = "chat message"
SWITCH_MODE = "switch mode"
GET_USAGE_STATS = "get usage stats"
SETTINGS_CHANGE = "settings change"

# Outbound events
CHAT_RESPONSE = "chat response"
ERROR = "error"
USAGE_STATS = "usage stats"

# The only error text clients ever see
GENERIC_ERROR_MESSAGE = "Processing failed"

Emitter = Callable[[str, dict], Awaitable[None]]


class ConnectionState(str, enum.Enum):
    """Lifecycle states of a client connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


# Valid transitions: (from_state, event) -> to_state
VALID_TRANSITIONS: dict[tuple[ConnectionState, str], ConnectionState] = {
    (ConnectionState.CONNECTING, "connect"): ConnectionState.OPEN,
    (ConnectionState.CONNECTING, "disconnect"): ConnectionState.CLOSED,
    (ConnectionState.OPEN, "disconnect"): ConnectionState.CLOSED,
}


class InvalidTransitionError(StateError):
    """Raised when a connection lifecycle transition is not allowed."""


class Connection:
    """A client connection as seen by the router."""

    def __init__(self, connection_id: str, emit: Emitter):
        self.id = connection_id
        self._emit = emit
        self.state = ConnectionState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    def transition(self, event: str) -> ConnectionState:
        target = VALID_TRANSITIONS.get((self.state, event))
        if target is None:
            raise InvalidTransitionError(
                f"No valid transition from '{self.state.value}' with event '{event}'"
            )
        self.state = target
        return target

    async def emit(self, event: str, payload: dict) -> None:
        """Send an event unless the connection has already closed."""
        if not self.is_open:
            logger.debug(f"Skipped '{event}' for closed client {self.id}")
            return
        await self._emit(event, payload)


class ConnectionRouter:
    """Binds each connection to its history and dispatches its events.

    One router serves every connection in the process. Connections share the
    usage accumulator; histories are keyed by connection id and never cross.
    """

    def __init__(
        self,
        history: SessionHistoryStore,
        gateway: CompletionGateway,
        usage: UsageAccumulator,
    ):
        self.history = history
        self.gateway = gateway
        self.usage = usage
        self._handlers: dict[str, Callable[[Connection, Any], Awaitable[None]]] = {
            CHAT_MESSAGE: self._handle_chat_message,
            SWITCH_MODE: self._handle_mode_switch,
            GET_USAGE_STATS: self._handle_get_usage_stats,
            SETTINGS_CHANGE: self._handle_settings_change,
        }

    def connect(self, connection_id: str, emit: Emitter) -> Connection:
        """Register a new connection and open its session."""
        connection = Connection(connection_id, emit)
        connection.transition("connect")
        self.history.open(connection_id)
        logger.info(
            f"New client connected: {connection_id}",
            extra=log_extra(LogCategory.CONNECTION),
        )
        return connection

    def disconnect(self, connection: Connection) -> None:
        """Close a connection and discard its session. Safe to call twice."""
        if connection.state == ConnectionState.CLOSED:
            return
        connection.transition("disconnect")
        self.history.close(connection.id)
        logger.info(
            f"Client disconnected: {connection.id}",
            extra=log_extra(LogCategory.CONNECTION),
        )

    async def dispatch(self, connection: Connection, event: str, data: Any = None) -> None:
        """Route an inbound event to its handler."""
        if not connection.is_open:
            logger.debug(f"Ignored '{event}' from closed client {connection.id}")
            return

        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event '{event}' from client {connection.id}")
            await self._emit_error(connection)
            return

        await handler(connection, data)

    async def _handle_chat_message(self, connection: Connection, data: Any) -> None:
        mode = InteractionMode.TRANSLATE
        try:
            request = self._parse_chat_message(data)
            mode = request.interaction_type

            logger.info(
                f"Received message from client {connection.id}",
                extra=log_extra(
                    LogCategory.MESSAGE,
                    target_lang=request.target_lang,
                    response_mode=request.response_mode.value,
                    interaction_type=mode.value,
                    model=request.model or "default",
                    message_length=len(request.message),
                ),
            )

            result = await self._complete(connection, request)
        except ValidationError as e:
            CHAT_MESSAGES_TOTAL.labels(mode=mode.value, outcome="invalid").inc()
            logger.warning(f"Rejected message from client {connection.id}: {e}")
            await self._emit_error(connection)
            return
        except ChatError:
            CHAT_MESSAGES_TOTAL.labels(mode=mode.value, outcome="failed").inc()
            logger.error(f"Processing error for client {connection.id}", exc_info=True)
            await self._emit_error(connection)
            return

        snapshot = self.usage.snapshot()
        payload = ChatResponsePayload(
            text=result.text,
            usage=TokenUsage.model_validate(result.usage) if result.usage else None,
            stats=UsageStatsResponse.from_snapshot(snapshot),
        )

        if mode == InteractionMode.CONVERSATION:
            if connection.is_open:
                self.history.append_exchange(connection.id, request.message, result.text)
            else:
                logger.debug(
                    f"Dropped late exchange for closed client {connection.id}",
                    extra=log_extra(LogCategory.HISTORY),
                )

        CHAT_MESSAGES_TOTAL.labels(mode=mode.value, outcome="success").inc()
        await connection.emit(CHAT_RESPONSE, payload.model_dump(by_alias=True))

        logger.info(
            "Session usage statistics updated",
            extra=log_extra(
                LogCategory.STATS,
                total_tokens=snapshot.total_tokens,
                total_requests=snapshot.total_requests,
                avg_tokens_per_request=snapshot.avg_tokens_per_request,
            ),
        )

    def _parse_chat_message(self, data: Any) -> ChatMessagePayload:
        """Validate a chat message payload before any provider call."""
        if not isinstance(data, dict):
            raise ValidationError("Chat message payload must be an object")
        try:
            request = ChatMessagePayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed chat message: {e.error_count()} errors") from e
        if not request.message.strip():
            raise ValidationError("Message text is missing")
        if not request.target_lang:
            raise ValidationError("Target language is missing")
        return request

    async def _complete(
        self, connection: Connection, request: ChatMessagePayload
    ) -> CompletionResult:
        if request.interaction_type == InteractionMode.CONVERSATION:
            # Read before suspending; the append happens after the call returns
            history = self.history.get(connection.id)
            return await self.gateway.converse(
                request.message,
                request.target_lang,
                request.response_mode,
                history,
                model=request.model,
            )
        return await self.gateway.translate(
            request.message,
            request.target_lang,
            request.response_mode,
            model=request.model,
        )

    async def _handle_mode_switch(self, connection: Connection, data: Any) -> None:
        # History is keyed by connection, not mode, so nothing to reset.
        try:
            payload = SwitchModePayload.model_validate(data)
        except PydanticValidationError:
            logger.warning(f"Client {connection.id} sent an invalid mode switch: {data!r}")
            return
        logger.info(
            f"Client {connection.id} switched to {payload.interaction_type.value} mode",
            extra=log_extra(LogCategory.MODE),
        )

    async def _handle_get_usage_stats(self, connection: Connection, data: Any) -> None:
        logger.info(
            f"Client {connection.id} requested usage statistics",
            extra=log_extra(LogCategory.STATS),
        )
        stats = UsageStatsResponse.from_snapshot(self.usage.snapshot())
        await connection.emit(USAGE_STATS, stats.model_dump(by_alias=True))

    async def _handle_settings_change(self, connection: Connection, data: Any) -> None:
        try:
            payload = SettingsChangePayload.model_validate(data)
        except PydanticValidationError:
            logger.warning(f"Client {connection.id} sent invalid settings: {data!r}")
            return
        logger.info(
            f"Client {connection.id} changed settings",
            extra=log_extra(
                LogCategory.SETTINGS,
                type=payload.type,
                to=payload.to,
                **{"from": payload.from_},
            ),
        )

    async def _emit_error(self, connection: Connection) -> None:
        payload = ErrorPayload(message=GENERIC_ERROR_MESSAGE)
        await connection.emit(ERROR, payload.model_dump(by_alias=True))
