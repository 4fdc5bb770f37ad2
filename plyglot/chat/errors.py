"""Error taxonomy for chat processing.

None of these messages are sent to clients; the router replaces them with a
generic error event.
"""


class ChatError(Exception):
    """Base class for chat processing failures."""


class ValidationError(ChatError):
    """Request rejected before any provider call."""


class ProviderError(ChatError):
    """The completion provider failed, timed out or returned malformed data."""


class StateError(ChatError):
    """Operation referenced a connection that is not open."""
