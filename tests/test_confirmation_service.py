from bridge.services.confirmation_service import (
    ConfirmationOutcome,
    ConfirmationState,
    ConfirmationTracker,
    classify_confirmation,
    is_confirmation_request,
)

KEY = "919876543210@s.whatsapp.net"


class TestIsConfirmationRequest:
    def test_detects_question_phrases(self):
        assert is_confirmation_request("Would you like me to check refund status?") is True
        assert is_confirmation_request("Do you want the statement?") is True
        assert is_confirmation_request("SHOULD I block the card?") is True

    def test_plain_answer_is_not_a_request(self):
        assert is_confirmation_request("Your balance is 5000") is False

    def test_empty_reply(self):
        assert is_confirmation_request("") is False


class TestClassifyConfirmation:
    def test_yes_words(self):
        for word in ["yes", "Haan", " ok ", "okay", "sure", "hmm", "ha"]:
            assert classify_confirmation(word) == "yes"

    def test_no_words(self):
        for word in ["no", "NAHI", "na", "cancel"]:
            assert classify_confirmation(word) == "no"

    def test_exact_match_only(self):
        assert classify_confirmation("yes please") == "unknown"
        assert classify_confirmation("nope") == "unknown"


class TestConfirmationTracker:
    def test_no_pending(self):
        tracker = ConfirmationTracker()

        resolution = tracker.resolve(KEY, "yes")

        assert resolution.outcome == ConfirmationOutcome.NO_PENDING

    def test_yes_confirms_original_question(self):
        tracker = ConfirmationTracker()
        tracker.remember(KEY, "refund status")

        resolution = tracker.resolve(KEY, "yes")

        assert resolution.outcome == ConfirmationOutcome.CONFIRMED
        assert resolution.original_question == "refund status"
        assert tracker.state(KEY) == ConfirmationState.NONE

    def test_no_cancels(self):
        tracker = ConfirmationTracker()
        tracker.remember(KEY, "refund status")

        resolution = tracker.resolve(KEY, "nahi")

        assert resolution.outcome == ConfirmationOutcome.CANCELLED
        assert tracker.get(KEY) is None

    def test_longer_text_supersedes(self):
        tracker = ConfirmationTracker()
        tracker.remember(KEY, "refund status")

        resolution = tracker.resolve(KEY, "nope")

        assert resolution.outcome == ConfirmationOutcome.SUPERSEDED
        assert len(tracker) == 0

    def test_short_text_keeps_pending(self):
        tracker = ConfirmationTracker()
        tracker.remember(KEY, "refund status")

        resolution = tracker.resolve(KEY, "hm")

        assert resolution.outcome == ConfirmationOutcome.UNCLEAR
        assert tracker.state(KEY) == ConfirmationState.AWAITING_CONFIRMATION

    def test_remember_replaces_older_question(self):
        tracker = ConfirmationTracker()
        tracker.remember(KEY, "first")
        tracker.remember(KEY, "second")

        assert tracker.get(KEY).original_question == "second"
        assert len(tracker) == 1

    def test_keys_are_independent(self):
        tracker = ConfirmationTracker()
        tracker.remember(KEY, "refund status")

        assert tracker.resolve("other@s.whatsapp.net", "yes").outcome == ConfirmationOutcome.NO_PENDING
        assert tracker.state(KEY) == ConfirmationState.AWAITING_CONFIRMATION
