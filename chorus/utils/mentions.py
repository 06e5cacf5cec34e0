"""``@DisplayName`` mention parsing."""

import re
from dataclasses import dataclass

MENTION_RE = re.compile(r"@(\S+)")


@dataclass
class MentionMatch:
    model_id: str
    display_name: str
    start: int
    end: int


def parse_mentions(text: str, model_names: dict[str, str]) -> list[MentionMatch]:
    """Find mentions of known models in ``text``.

    A mention matches a display name with its whitespace removed, compared
    case-insensitively, so ``@GPT4o`` matches "GPT 4o".

    Args:
        text: Message text
        model_names: Mapping of model id to display name

    Returns:
        Matches in order of appearance
    """
    normalized = {model_id: "".join(name.split()).lower() for model_id, name in model_names.items()}
    matches = []
    for match in MENTION_RE.finditer(text):
        raw = match.group(1).lower()
        for model_id, name in normalized.items():
            if raw == name:
                matches.append(MentionMatch(model_id, model_names[model_id], match.start(), match.end()))
                break
    return matches


def extract_mentioned_model_ids(text: str, model_names: dict[str, str]) -> list[str]:
    return [match.model_id for match in parse_mentions(text, model_names)]


def strip_mentions(text: str) -> str:
    return MENTION_RE.sub("", text).strip()
