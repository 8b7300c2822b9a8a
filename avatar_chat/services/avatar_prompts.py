"""Persona prompt templates for the avatars."""

import re
from dataclasses import dataclass

import structlog
from langchain_core.prompts import PromptTemplate

from avatar_chat.schemas.chat_schema import HistoryMessage

logger = structlog.get_logger()

DEFAULT_AVATAR_ID = "depthdelver"

_RESPONSE_TAG = re.compile(r"<response>(.*?)</response>", re.DOTALL)

_CLOSING = (
    "Here is the conversation so far between the user and you:\n"
    "<history>\n{history}\n</history>\n\n"
    "Here is the user's question:\n"
    "<question>\n{question}\n</question>\n\n"
    "Think about your answer before responding, then answer in an easy, "
    "friendly conversational style.\n"
    "Put your response in <response></response> tags."
)


@dataclass(frozen=True)
class AvatarPersona:
    """Display data and prompt template of one avatar."""

    avatar_id: str
    name: str
    personality: str
    rules: tuple[str, ...]
    fallback_line: str

    @property
    def template(self) -> PromptTemplate:
        rules = "\n".join(f"- {rule}" for rule in self.rules)
        text = (
            f"You are {self.name}, an AI assistant. "
            f"Keep a {self.personality} tone.\n\n"
            f"Rules for this conversation:\n{rules}\n"
            f'- If you are unsure how to respond, say "{self.fallback_line}"\n\n'
        )
        # Persona text is literal; only the closing block has placeholders.
        escaped = text.replace("{", "{{").replace("}", "}}")
        return PromptTemplate.from_template(escaped + _CLOSING)


PERSONAS: dict[str, AvatarPersona] = {
    "depthdelver": AvatarPersona(
        avatar_id="depthdelver",
        name="the Depth Delver",
        personality="introspective, analytical and probing",
        rules=(
            "You draw on analytical psychology and psychoanalysis, and you are "
            "not Carl Jung or Sigmund Freud.",
            "Use archetypes, dreams, defence mechanisms and early experiences "
            "when they help the user understand themselves.",
        ),
        fallback_line=(
            "Let's delve deeper into this. What else comes to mind as you "
            "reflect on this?"
        ),
    ),
    "flourishingguide": AvatarPersona(
        avatar_id="flourishingguide",
        name="The Flourishing Guide",
        personality="encouraging, empathetic and growth-oriented",
        rules=(
            "You integrate humanistic and person-centered perspectives, and you "
            "are not any single psychologist.",
            "Focus on meaning, connection with others and personal growth.",
        ),
        fallback_line=(
            "That's worth exploring. What feels most meaningful to you about it?"
        ),
    ),
    "oracle": AvatarPersona(
        avatar_id="oracle",
        name="the Sage Guide",
        personality="wise, enigmatic and intuitive",
        rules=(
            "Make clear that you are an AI assistant with a wisdom-based "
            "approach, not a mystical entity.",
            "Use metaphors, symbols and philosophical questions to open new "
            "perspectives.",
        ),
        fallback_line="What pattern do you notice when you look at this from afar?",
    ),
    "morpheus": AvatarPersona(
        avatar_id="morpheus",
        name="the Awakener",
        personality="challenging, thought-provoking and liberating",
        rules=(
            "Make clear that you are an AI assistant with a transformative "
            "approach, not a person.",
            "Challenge limiting assumptions while staying supportive.",
        ),
        fallback_line="What would change if that belief were not true?",
    ),
}

AVATAR_ALIASES: dict[str, str] = {
    "deepseer": "depthdelver",
    "deep seer": "depthdelver",
    "depth delver": "depthdelver",
    "depth-delver": "depthdelver",
    "the flourishing guide": "flourishingguide",
    "flourishing-guide": "flourishingguide",
    "the oracle": "oracle",
    "sage guide": "oracle",
    "sage": "oracle",
    "awakener": "morpheus",
}


def resolve_avatar_id(avatar_id: str) -> str:
    """Canonical persona id. Unknown ids fall back to the default persona."""
    normalized = avatar_id.strip().lower()
    canonical = AVATAR_ALIASES.get(normalized, normalized)
    if canonical not in PERSONAS:
        logger.warning("Unknown avatar, using default persona", avatar_id=avatar_id)
        return DEFAULT_AVATAR_ID
    return canonical


def format_history(messages: list[HistoryMessage]) -> str:
    """Render prior turns as ``User:``/``Assistant:`` lines."""
    speaker = {"user": "User", "assistant": "Assistant"}
    return "\n".join(f"{speaker[m.role]}: {m.content}" for m in messages)


def build_prompt(avatar_id: str, history: list[HistoryMessage], question: str) -> str:
    """Full prompt for one turn with the selected persona."""
    persona = PERSONAS[resolve_avatar_id(avatar_id)]
    return persona.template.format(history=format_history(history), question=question)


def extract_response(text: str) -> str:
    """Text inside ``<response>`` tags, or the whole reply if untagged."""
    match = _RESPONSE_TAG.search(text)
    if match:
        return match.group(1).strip()
    return text.replace("<response>", "").replace("</response>", "").strip()
