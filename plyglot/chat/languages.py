"""Language, style and interaction-mode vocabularies."""

import enum

# Languages enabled out of the box.
BASE_LANGUAGES: dict[str, str] = {
    "en": "English",
    "fr": "French",
    "no": "Norwegian",
    "es": "Spanish",
    "sv": "Swedish",
    "da": "Danish",
    "de": "German",
}

# Known languages that can be switched on through SUPPORTED_LANGUAGES.
EXTENDED_LANGUAGES: dict[str, str] = {
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "tr": "Turkish",
    "pl": "Polish",
}

KNOWN_LANGUAGES: dict[str, str] = {**BASE_LANGUAGES, **EXTENDED_LANGUAGES}


class ResponseStyle(str, enum.Enum):
    """Tone of the generated text."""

    NORMAL = "normal"
    POETIC = "poetic"


class InteractionMode(str, enum.Enum):
    """Whether a message is translated once or answered in a conversation."""

    TRANSLATE = "translate"
    CONVERSATION = "conversation"


def language_name(code: str) -> str:
    """Return the English name for a language code.

    Raises:
        KeyError: If the code is unknown.
    """
    return KNOWN_LANGUAGES[code]
