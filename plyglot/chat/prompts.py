"""Prompt construction for translation and conversation requests."""

from collections.abc import Sequence

from plyglot.chat.history import ConversationTurn
from plyglot.chat.languages import ResponseStyle

TRANSLATOR_PERSONA = "You are a professional translator specializing in {language}."
POETIC_TRANSLATOR_PERSONA = (
    "You are a poetic translator specializing in {language}, "
    "with a flair for creative and expressive language."
)
POETIC_TRANSLATION_INSTRUCTIONS = (
    "Make the translation poetic and expressive, using beautiful metaphors and "
    "elegant phrasing while maintaining the original meaning."
)

TRANSLATION_PROMPT = """Translate the following text to {language}.
Maintain the original tone, meaning, and context as accurately as possible.
If there are any culturally specific references, adapt them appropriately for the target language.
{instructions}

Text to translate: "{message}"

Translation:"""

ASSISTANT_PERSONA = (
    "You are a helpful, friendly AI assistant who responds in {language}. "
    "Always respond in {language} regardless of the language the user writes in."
)
POETIC_ASSISTANT_PERSONA = (
    "You are a poetic and expressive AI assistant who responds in {language} "
    "with beautiful metaphors and elegant phrasing. "
    "Always respond in {language} regardless of the language the user writes in."
)


def build_translation_messages(
    message: str, language: str, style: ResponseStyle
) -> list[dict[str, str]]:
    """Build the system and user messages for a one-shot translation."""
    if style == ResponseStyle.POETIC:
        persona = POETIC_TRANSLATOR_PERSONA.format(language=language)
        instructions = POETIC_TRANSLATION_INSTRUCTIONS
    else:
        persona = TRANSLATOR_PERSONA.format(language=language)
        instructions = ""

    prompt = TRANSLATION_PROMPT.format(
        language=language, instructions=instructions, message=message
    )
    return [
        {"role": "system", "content": persona},
        {"role": "user", "content": prompt},
    ]


def build_conversation_messages(
    message: str,
    language: str,
    style: ResponseStyle,
    history: Sequence[ConversationTurn],
) -> list[dict[str, str]]:
    """Build system prompt, prior turns in order, then the new user turn."""
    template = POETIC_ASSISTANT_PERSONA if style == ResponseStyle.POETIC else ASSISTANT_PERSONA
    messages = [{"role": "system", "content": template.format(language=language)}]
    messages.extend(turn.to_message() for turn in history)
    messages.append({"role": "user", "content": message})
    return messages
