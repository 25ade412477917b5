import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from bridge.logging_config import get_logger
from bridge.schemas.inbound import InboundMessage

logger = get_logger("trigger_service")

MENTION_PATTERN = re.compile(r"(?<!\w)@\S+")
DEVANAGARI_PATTERN = re.compile(r"[\u0900-\u097F]")


@dataclass
class TriggerConfig:
    bot_names: List[str] = field(default_factory=list)
    bot_number_fallbacks: List[str] = field(default_factory=list)
    bot_commands: List[str] = field(default_factory=list)


@dataclass
class TriggerDecision:
    accepted: bool
    clean_text: str = ""
    reason: Optional[str] = None

    @staticmethod
    def skip(reason: str) -> "TriggerDecision":
        return TriggerDecision(accepted=False, reason=reason)

    @staticmethod
    def accept(clean_text: str) -> "TriggerDecision":
        return TriggerDecision(accepted=True, clean_text=clean_text)


def load_trigger_config(
    bot_names: List[str],
    bot_number_fallbacks: List[str],
    bot_commands: List[str],
    triggers_file: Optional[str] = None,
) -> TriggerConfig:
    """Build trigger lists from settings, letting an optional YAML file override them."""
    config = TriggerConfig(
        bot_names=list(bot_names),
        bot_number_fallbacks=list(bot_number_fallbacks),
        bot_commands=list(bot_commands),
    )
    if not triggers_file:
        return config

    path = Path(triggers_file)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Triggers file must contain a mapping: {triggers_file}")

    for key in ("bot_names", "bot_number_fallbacks", "bot_commands"):
        values = data.get(key)
        if values is None:
            continue
        setattr(config, key, [str(value) for value in values])

    logger.info(f"Loaded trigger overrides from {triggers_file}")
    return config


def is_bot_triggered(text: str, config: TriggerConfig) -> bool:
    """Group-chat trigger: @bot name, @fallback number, or a leading command."""
    lower_text = text.lower()

    if any(f"@{name.lower()}" in lower_text for name in config.bot_names):
        return True
    if any(f"@{number}" in lower_text for number in config.bot_number_fallbacks):
        return True
    return any(lower_text.startswith(command.lower()) for command in config.bot_commands)


def clean_message_text(text: str, config: TriggerConfig) -> str:
    """Drop @mentions and a leading command prefix."""
    cleaned = text
    # Bot names may contain spaces, so they go before the single-token mentions.
    for name in sorted(config.bot_names, key=len, reverse=True):
        cleaned = re.sub(rf"@{re.escape(name)}", "", cleaned, flags=re.IGNORECASE)
    cleaned = MENTION_PATTERN.sub("", cleaned).strip()
    for command in config.bot_commands:
        cleaned = re.sub(rf"^{re.escape(command)}", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


def evaluate_trigger(message: InboundMessage, config: TriggerConfig) -> TriggerDecision:
    """Decide whether an inbound message should be answered and return its cleaned text.

    Image messages are accepted with an empty cleaned caption: their text comes from OCR later.
    """
    body = message.body or ""
    has_image = message.attachment is not None

    if not body and not has_image:
        return TriggerDecision.skip("empty")

    if message.sender_is_self:
        return TriggerDecision.skip("self")

    if message.is_group and not is_bot_triggered(body, config):
        return TriggerDecision.skip("not_triggered")

    clean_text = clean_message_text(body, config)
    if not clean_text and not has_image:
        return TriggerDecision.skip("empty_after_clean")

    return TriggerDecision.accept(clean_text)


def detect_language(text: str) -> str:
    """Script heuristic: any Devanagari code point means Hindi, everything else is English."""
    if DEVANAGARI_PATTERN.search(text or ""):
        return "hi"
    return "en"
