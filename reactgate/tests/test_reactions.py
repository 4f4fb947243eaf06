"""
Tests for reaction parsing and classification.
"""

import pytest

from reactgate.core.reactions import (
    ReactionClassifier,
    ReactionEvent,
    ReplyEvent,
    parse_reaction_added,
)


class TestReactionClassifier:
    """Approve-set membership decides the vote."""

    @pytest.fixture
    def classifier(self):
        return ReactionClassifier()

    @pytest.mark.parametrize("name", ["+1", "yes", "celebrate", "celeryman"])
    def test_default_approvals(self, classifier, name):
        assert classifier.is_approval(name)

    @pytest.mark.parametrize("name", ["-1", "no", "eyes", "tada", "thinking_face"])
    def test_everything_else_rejects(self, classifier, name):
        assert not classifier.is_approval(name)

    def test_skin_tone_variant_counts(self, classifier):
        assert classifier.is_approval("+1::skin-tone-3")
        assert not classifier.is_approval("-1::skin-tone-3")

    def test_custom_approve_set(self):
        classifier = ReactionClassifier({"shipit"})
        assert classifier.is_approval("shipit")
        assert not classifier.is_approval("+1")

    def test_translate(self, classifier):
        event = ReactionEvent(message_id="1700000000.000100", reactor_id="U0ALICE", reaction="+1")

        assert classifier.translate(event) == ReplyEvent(
            token="1700000000.000100", approver="U0ALICE", approved=True
        )


class TestParseReactionAdded:
    """Slack payload extraction."""

    def test_message_reaction(self):
        event = {
            "type": "reaction_added",
            "user": "U0BOB",
            "reaction": "-1",
            "item": {"type": "message", "channel": "C0TESTCHAN", "ts": "1700000000.000200"},
            "event_ts": "1700000001.000000",
        }

        assert parse_reaction_added(event) == ReactionEvent(
            message_id="1700000000.000200",
            reactor_id="U0BOB",
            reaction="-1",
            channel="C0TESTCHAN",
        )

    def test_file_reaction_ignored(self):
        event = {
            "type": "reaction_added",
            "user": "U0BOB",
            "reaction": "+1",
            "item": {"type": "file", "file": "F123"},
        }
        assert parse_reaction_added(event) is None

    def test_incomplete_payload_ignored(self):
        assert parse_reaction_added({"type": "reaction_added", "reaction": "+1"}) is None
