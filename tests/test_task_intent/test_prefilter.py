"""Tests for the message pre-filter."""

import pytest

from task_assistant.task_intent.models import PreFilterVerdict
from task_assistant.task_intent.prefilter import (
    EMOJI_REPLY,
    GREETING_REPLY,
    QUESTION_REPLY,
    SHORT_MESSAGE_REPLY,
    MessagePreFilter,
    is_symbol_only,
)


@pytest.fixture
def prefilter() -> MessagePreFilter:
    return MessagePreFilter()


@pytest.mark.unit
class TestMessagePreFilter:
    """Test cases for MessagePreFilter.evaluate."""

    def test_short_message(self, prefilter: MessagePreFilter) -> None:
        """Test that very short messages get the short reply."""
        result = prefilter.evaluate("ê")

        assert result.is_task_likely is False
        assert result.confidence == pytest.approx(0.9)
        assert result.quick_reply == SHORT_MESSAGE_REPLY

    def test_symbols_only(self, prefilter: MessagePreFilter) -> None:
        """Test emoji-only messages."""
        result = prefilter.evaluate("👍👍👍")

        assert result.is_task_likely is False
        assert result.quick_reply == EMOJI_REPLY
        assert is_symbol_only("!!! ???") is True
        assert is_symbol_only("ok 👍") is False

    def test_greeting(self, prefilter: MessagePreFilter) -> None:
        """Test greetings."""
        result = prefilter.evaluate("Xin chào!")

        assert result.is_task_likely is False
        assert result.confidence == pytest.approx(0.85)
        assert result.quick_reply == GREETING_REPLY
        assert result.verdict == PreFilterVerdict.LIKELY_NOT_TASK

    def test_non_task_small_talk(self, prefilter: MessagePreFilter) -> None:
        """Test small talk without a canned reply."""
        result = prefilter.evaluate("Cảm ơn")

        assert result.is_task_likely is False
        assert result.confidence == pytest.approx(0.8)
        assert result.quick_reply is None

    def test_question(self, prefilter: MessagePreFilter) -> None:
        """Test questions about the assistant."""
        result = prefilter.evaluate("Bạn là ai vậy")

        assert result.is_task_likely is False
        assert result.confidence == pytest.approx(0.75)
        assert result.quick_reply == QUESTION_REPLY

    def test_multiple_indicators(self, prefilter: MessagePreFilter) -> None:
        """Test that two indicator groups give high confidence."""
        result = prefilter.evaluate("Họp team lúc 15:00")

        assert result.is_task_likely is True
        assert result.confidence == pytest.approx(0.9)
        assert result.verdict == PreFilterVerdict.LIKELY_TASK

    def test_single_indicator(self, prefilter: MessagePreFilter) -> None:
        """Test a single indicator group."""
        result = prefilter.evaluate("Nộp bài")

        assert result.is_task_likely is True
        assert result.confidence == pytest.approx(0.7)

    def test_long_message_without_indicators(self, prefilter: MessagePreFilter) -> None:
        """Test that long free text might still be a task."""
        result = prefilter.evaluate("mua hai hộp sữa tươi cho bé nhà mình")

        assert result.is_task_likely is True
        assert result.confidence == pytest.approx(0.6)

    def test_uncertain(self, prefilter: MessagePreFilter) -> None:
        """Test a short message without signals."""
        result = prefilter.evaluate("mua sữa")

        assert result.is_task_likely is False
        assert result.confidence == pytest.approx(0.5)
        assert result.verdict == PreFilterVerdict.UNCERTAIN

    def test_context_after_detail_question(self, prefilter: MessagePreFilter) -> None:
        """Test that answers to a detail question count as task content."""
        result = prefilter.evaluate_with_context(
            "Cảm ơn", history=["Bạn muốn họp lúc mấy giờ?"]
        )

        assert result.is_task_likely is True
        assert result.confidence == pytest.approx(0.8)

    def test_context_without_detail_question(self, prefilter: MessagePreFilter) -> None:
        """Test that unrelated history leaves the verdict alone."""
        result = prefilter.evaluate_with_context("Cảm ơn", history=["Đã tạo task"])

        assert result.is_task_likely is False
        assert result.confidence == pytest.approx(0.8)
