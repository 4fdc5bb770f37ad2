"""Tests for ConnectionRouter - connection lifecycle and event dispatch."""

import asyncio
import random

import pytest

from plyglot.chat.errors import ProviderError, StateError
from plyglot.chat.gateway import CompletionGateway
from plyglot.chat.history import SessionHistoryStore
from plyglot.chat.providers import LLMResponse
from plyglot.gateway.connection_router import (
    CHAT_MESSAGE,
    CHAT_RESPONSE,
    ERROR,
    GENERIC_ERROR_MESSAGE,
    GET_USAGE_STATS,
    SETTINGS_CHANGE,
    SWITCH_MODE,
    USAGE_STATS,
    Connection,
    ConnectionRouter,
    ConnectionState,
    InvalidTransitionError,
)


def chat(message="Hello", target_lang="fr", mode="translate", style="normal", **extra):
    return {
        "message": message,
        "targetLang": target_lang,
        "responseMode": style,
        "interactionType": mode,
        **extra,
    }


class TestConnectionLifecycle:
    """Tests for the CONNECTING -> OPEN -> CLOSED state machine."""

    def test_connect_opens_session(self, connection_router, history_store, emitter):
        """Connecting moves to OPEN and creates an empty history."""
        connection = connection_router.connect("c1", emitter)

        assert connection.state == ConnectionState.OPEN
        assert "c1" in history_store
        assert history_store.get("c1") == []

    def test_disconnect_closes_session(self, connection_router, history_store, emitter):
        """Disconnecting moves to CLOSED and discards history."""
        connection = connection_router.connect("c1", emitter)
        history_store.append_exchange("c1", "hi", "salut")

        connection_router.disconnect(connection)

        assert connection.state == ConnectionState.CLOSED
        assert "c1" not in history_store

    def test_disconnect_twice_is_safe(self, connection_router, emitter):
        connection = connection_router.connect("c1", emitter)
        connection_router.disconnect(connection)
        connection_router.disconnect(connection)
        assert connection.state == ConnectionState.CLOSED

    def test_closed_connection_cannot_reopen(self, emitter):
        """CLOSED is terminal."""
        connection = Connection("c1", emitter)
        connection.transition("connect")
        connection.transition("disconnect")
        with pytest.raises(InvalidTransitionError):
            connection.transition("connect")

    def test_invalid_transition_is_a_state_error(self, emitter):
        connection = Connection("c1", emitter)
        with pytest.raises(StateError):
            connection.transition("reconnect")

    def test_disconnect_before_open(self, emitter):
        """A connection may close before it finished opening."""
        connection = Connection("c1", emitter)
        assert connection.transition("disconnect") == ConnectionState.CLOSED

    async def test_events_after_close_are_ignored(self, connection_router, emitter, mock_llm_router):
        """A retired connection accepts no further events."""
        connection = connection_router.connect("c1", emitter)
        connection_router.disconnect(connection)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat())
        await connection_router.dispatch(connection, GET_USAGE_STATS)

        mock_llm_router.generate.assert_not_called()
        assert emitter.events == []


class TestChatMessage:
    """Tests for chat message processing."""

    async def test_translate_emits_response(self, connection_router, emitter, history_store):
        """Translation emits text, usage and stats and leaves history alone."""
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat())

        assert [name for name, _ in emitter.events] == [CHAT_RESPONSE]
        response = emitter.named(CHAT_RESPONSE)[0]
        assert response["text"] == "Bonjour"
        assert response["usage"] == {"promptTokens": 50, "completionTokens": 30, "totalTokens": 80}
        assert response["stats"]["totalTokens"] == 80
        assert response["stats"]["translationRequests"] == 1
        assert response["stats"]["avgTokensPerRequest"] == "80.0"
        assert history_store.get("c1") == []

    async def test_translate_does_not_send_history(self, connection_router, emitter, history_store, mock_llm_router):
        """Translation requests never include conversation history."""
        history_store.append_exchange("c1", "earlier", "plus tôt")
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat())

        messages = mock_llm_router.generate.call_args.args[0]
        assert len(messages) == 2
        assert "earlier" not in str(messages)

    async def test_conversation_appends_exchange(self, connection_router, emitter, history_store):
        """A conversation message adds exactly two turns."""
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))

        history = history_store.get("c1")
        assert [(t.role.value, t.content) for t in history] == [
            ("user", "Hello"),
            ("assistant", "Bonjour"),
        ]
        assert emitter.named(CHAT_RESPONSE)[0]["stats"]["conversationRequests"] == 1

    async def test_conversation_sends_prior_turns(self, connection_router, emitter, mock_llm_router):
        """The second conversation message carries the first exchange."""
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat("First", mode="conversation"))
        await connection_router.dispatch(connection, CHAT_MESSAGE, chat("Second", mode="conversation"))

        messages = mock_llm_router.generate.call_args.args[0]
        assert [m["content"] for m in messages[1:]] == ["First", "Bonjour", "Second"]

    async def test_model_override_is_forwarded(self, connection_router, emitter, mock_llm_router):
        connection = connection_router.connect("c1", emitter)
        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(model="gpt-4o-mini"))
        assert mock_llm_router.generate.call_args.kwargs["model"] == "gpt-4o-mini"

    async def test_response_without_usage(self, connection_router, emitter, mock_llm_router, llm_response):
        """Responses without provider usage report usage as null."""
        response = llm_response("Hallo")
        response.usage = None
        mock_llm_router.generate.return_value = response
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(target_lang="de"))

        payload = emitter.named(CHAT_RESPONSE)[0]
        assert payload["usage"] is None
        assert payload["stats"]["totalRequests"] == 0

    @pytest.mark.parametrize(
        "payload",
        [
            chat(message=""),
            chat(message="   "),
            chat(target_lang=""),
            {"targetLang": "en"},
            chat(mode="interpretive-dance"),
            chat(style="sarcastic"),
            chat(target_lang="xx"),
            "not an object",
            None,
        ],
    )
    async def test_invalid_message_emits_single_error(
        self, connection_router, emitter, history_store, mock_llm_router, payload
    ):
        """Invalid requests emit one generic error and never reach the provider."""
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, payload)

        assert emitter.events == [(ERROR, {"message": GENERIC_ERROR_MESSAGE})]
        mock_llm_router.generate.assert_not_called()
        assert history_store.get("c1") == []
        assert connection.is_open

    async def test_provider_failure_keeps_connection_usable(
        self, connection_router, emitter, history_store, mock_llm_router, llm_response
    ):
        """After a provider error the next message still works."""
        mock_llm_router.generate.side_effect = [RuntimeError("upstream 500: secret detail"), llm_response()]
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))
        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))

        assert [name for name, _ in emitter.events] == [ERROR, CHAT_RESPONSE]
        assert emitter.events[0][1] == {"message": GENERIC_ERROR_MESSAGE}
        assert "secret" not in str(emitter.events)
        assert history_store.exchange_count("c1") == 1
        assert connection.is_open

    async def test_failure_records_no_usage(self, connection_router, emitter, mock_llm_router, usage):
        mock_llm_router.generate.side_effect = ProviderError("boom")
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat())

        assert usage.snapshot().total_requests == 0

    async def test_disconnect_mid_call(self, connection_router, emitter, history_store, mock_llm_router, usage, llm_response):
        """A reply that lands after disconnect is not stored or emitted, but usage counts."""
        release = asyncio.Event()

        async def slow(*args, **kwargs):
            await release.wait()
            return llm_response()

        mock_llm_router.generate.side_effect = slow
        connection = connection_router.connect("c1", emitter)

        task = asyncio.create_task(
            connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))
        )
        await asyncio.sleep(0)
        connection_router.disconnect(connection)
        release.set()
        await task

        assert emitter.events == []
        assert "c1" not in history_store
        assert usage.snapshot().conversation_requests == 1

    async def test_malformed_usage_still_answers(self, connection_router, emitter, history_store, mock_llm_router, usage, llm_response):
        """Non-numeric usage fields count as zero and the reply is still delivered."""
        mock_llm_router.generate.return_value = llm_response(
            "Salut", usage={"prompt_tokens": None, "completion_tokens": 30, "total_tokens": 80}
        )
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))

        assert [name for name, _ in emitter.events] == [CHAT_RESPONSE]
        payload = emitter.named(CHAT_RESPONSE)[0]
        assert payload["usage"] == {"promptTokens": 0, "completionTokens": 30, "totalTokens": 80}
        assert payload["stats"]["conversationRequests"] == 1
        assert history_store.exchange_count("c1") == 1
        assert usage.snapshot().prompt_tokens == 0

    async def test_late_reply_never_recreates_history(
        self, connection_router, emitter, history_store, mock_llm_router, llm_response, monkeypatch
    ):
        """A late reply is dropped even after the store has forgotten the closed id."""
        monkeypatch.setattr("plyglot.chat.history.RETIRED_IDS_LIMIT", 1)
        release = asyncio.Event()

        async def slow(*args, **kwargs):
            await release.wait()
            return llm_response()

        mock_llm_router.generate.side_effect = slow
        connection = connection_router.connect("c1", emitter)

        task = asyncio.create_task(
            connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))
        )
        await asyncio.sleep(0)
        connection_router.disconnect(connection)
        history_store.close("other")
        release.set()
        await task

        assert "c1" not in history_store
        assert len(history_store) == 0


class TestConcurrentConnections:
    """Tests for isolation between connections."""

    async def test_histories_never_intermix(self, test_settings, usage, mock_llm_router):
        """Interleaved conversations on two connections stay separate."""

        async def echo(messages, **kwargs):
            await asyncio.sleep(random.uniform(0, 0.005))
            return LLMResponse(
                content=f"re:{messages[-1]['content']}",
                model="gpt-4",
                provider="openai",
                usage={"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
            )

        mock_llm_router.generate.side_effect = echo
        store = SessionHistoryStore(max_history_length=100)
        router = ConnectionRouter(store, CompletionGateway(mock_llm_router, usage, test_settings), usage)

        async def talk(connection_id: str):
            connection = router.connect(connection_id, lambda event, data: asyncio.sleep(0))
            for i in range(10):
                await router.dispatch(
                    connection, CHAT_MESSAGE, chat(f"{connection_id}-{i}", mode="conversation")
                )

        await asyncio.gather(talk("a"), talk("b"))

        for connection_id in ("a", "b"):
            contents = [t.content for t in store.get(connection_id)]
            assert len(contents) == 20
            assert all(connection_id in c for c in contents)
            assert contents[::2] == [f"{connection_id}-{i}" for i in range(10)]
        assert usage.snapshot().conversation_requests == 20


class TestLocalEvents:
    """Tests for switch mode, stats and settings events."""

    async def test_get_usage_stats(self, connection_router, emitter, usage):
        usage.record({"total_tokens": 80, "prompt_tokens": 50, "completion_tokens": 30}, "translation")
        connection = connection_router.connect("c1", emitter)

        await connection_router.dispatch(connection, GET_USAGE_STATS)

        assert emitter.events == [
            (
                USAGE_STATS,
                {
                    "totalTokens": 80,
                    "promptTokens": 50,
                    "completionTokens": 30,
                    "translationRequests": 1,
                    "conversationRequests": 0,
                    "totalRequests": 1,
                    "avgTokensPerRequest": "80.0",
                },
            )
        ]

    async def test_switch_mode_preserves_history(self, connection_router, emitter, history_store):
        """Switching modes neither resets history nor emits anything."""
        connection = connection_router.connect("c1", emitter)
        await connection_router.dispatch(connection, CHAT_MESSAGE, chat(mode="conversation"))
        emitter.events.clear()

        await connection_router.dispatch(connection, SWITCH_MODE, {"interactionType": "translate"})
        await connection_router.dispatch(connection, SWITCH_MODE, {"interactionType": "conversation"})

        assert emitter.events == []
        assert history_store.exchange_count("c1") == 1

    async def test_invalid_switch_mode_is_ignored(self, connection_router, emitter):
        connection = connection_router.connect("c1", emitter)
        await connection_router.dispatch(connection, SWITCH_MODE, {"interactionType": "bogus"})
        assert emitter.events == []
        assert connection.is_open

    async def test_settings_change_is_logged_only(self, connection_router, emitter, history_store, usage, caplog):
        """Settings changes do not touch core state."""
        connection = connection_router.connect("c1", emitter)

        with caplog.at_level("INFO"):
            await connection_router.dispatch(
                connection,
                SETTINGS_CHANGE,
                {"type": "theme", "from": "light", "to": "dark", "timestamp": 1700000000},
            )

        assert emitter.events == []
        assert history_store.get("c1") == []
        assert usage.snapshot().total_requests == 0
        assert any("changed settings" in r.getMessage() for r in caplog.records)

    async def test_unknown_event_emits_error(self, connection_router, emitter):
        connection = connection_router.connect("c1", emitter)
        await connection_router.dispatch(connection, "reset usage", {})
        assert emitter.events == [(ERROR, {"message": GENERIC_ERROR_MESSAGE})]
