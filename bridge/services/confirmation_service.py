from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from bridge.logging_config import get_logger

logger = get_logger("confirmation_service")

CONFIRMATION_PHRASES = ("would you like", "do you want", "should i", "can i")
YES_CONFIRMATION_PHRASES = {"yes", "ha", "haan", "ok", "okay", "sure", "hmm"}
NO_CONFIRMATION_PHRASES = {"no", "nahi", "na", "cancel"}

# Longer non-matching replies are treated as a new question.
NEW_QUERY_MIN_LENGTH = 4


class ConfirmationState(str, Enum):
    NONE = "none"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class ConfirmationOutcome(str, Enum):
    NO_PENDING = "no_pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    SUPERSEDED = "superseded"
    UNCLEAR = "unclear"


@dataclass
class PendingConfirmation:
    original_question: str


@dataclass
class ConfirmationResolution:
    outcome: ConfirmationOutcome
    original_question: Optional[str] = None


def is_confirmation_request(reply: str) -> bool:
    """Detect a backend reply phrased as a yes/no question."""
    lowered = (reply or "").lower()
    return any(phrase in lowered for phrase in CONFIRMATION_PHRASES)


def classify_confirmation(text: str) -> str:
    """Classify a reply to a pending question as yes/no/unknown."""
    normalized = (text or "").strip().lower()
    if normalized in YES_CONFIRMATION_PHRASES:
        return "yes"
    if normalized in NO_CONFIRMATION_PHRASES:
        return "no"
    return "unknown"


class ConfirmationTracker:
    """Pending yes/no question per conversation key."""

    def __init__(self):
        self._pending: Dict[str, PendingConfirmation] = {}

    def state(self, conversation_key: str) -> ConfirmationState:
        if conversation_key in self._pending:
            return ConfirmationState.AWAITING_CONFIRMATION
        return ConfirmationState.NONE

    def get(self, conversation_key: str) -> Optional[PendingConfirmation]:
        return self._pending.get(conversation_key)

    def remember(self, conversation_key: str, original_question: str) -> None:
        """Store the question behind a confirmation-seeking reply, replacing any older one."""
        self._pending[conversation_key] = PendingConfirmation(original_question=original_question)
        logger.info("Awaiting confirmation", extra={"context": {"conversation": conversation_key}})

    def clear(self, conversation_key: str) -> Optional[PendingConfirmation]:
        return self._pending.pop(conversation_key, None)

    def resolve(self, conversation_key: str, text: str) -> ConfirmationResolution:
        """Apply the next inbound text to the pending question, if there is one.

        - yes: pending cleared, the stored question is asked again with ``confirmed``
        - no: pending cleared, nothing is sent to the backend
        - longer unrelated text: pending dropped silently, the text is a new query
        - short unrelated text: pending kept, the user is asked to answer yes or no
        """
        pending = self._pending.get(conversation_key)
        if pending is None:
            return ConfirmationResolution(ConfirmationOutcome.NO_PENDING)

        answer = classify_confirmation(text)
        if answer == "yes":
            self.clear(conversation_key)
            return ConfirmationResolution(ConfirmationOutcome.CONFIRMED, pending.original_question)

        if answer == "no":
            self.clear(conversation_key)
            return ConfirmationResolution(ConfirmationOutcome.CANCELLED, pending.original_question)

        if len((text or "").strip()) >= NEW_QUERY_MIN_LENGTH:
            self.clear(conversation_key)
            return ConfirmationResolution(ConfirmationOutcome.SUPERSEDED, pending.original_question)

        return ConfirmationResolution(ConfirmationOutcome.UNCLEAR, pending.original_question)

    def __len__(self) -> int:
        return len(self._pending)
