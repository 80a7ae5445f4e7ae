"""Cheap heuristics that screen out messages which are clearly not tasks."""

import logging
import re
import unicodedata

from .models import PreFilterResult

logger = logging.getLogger(__name__)

SHORT_MESSAGE_REPLY = (
    "Xin chào! Bạn cần tôi giúp gì? Hãy mô tả công việc hoặc lịch hẹn bạn muốn tạo."
)
GREETING_REPLY = (
    "Xin chào! Tôi là trợ lý quản lý công việc. Bạn muốn tạo task hay lịch hẹn gì không?"
)
QUESTION_REPLY = (
    "Tôi là trợ lý giúp bạn quản lý công việc và lịch hẹn. "
    "Hãy cho tôi biết task cần tạo nhé!"
)
EMOJI_REPLY = "😊 Bạn cần tạo task hay lịch hẹn nào không?"

GREETING_PATTERNS = (
    re.compile(r"^(xin chào|chào|hi|hello|good morning|good afternoon|good evening)[!.]*$"),
    re.compile(r"^(chào bạn|chào em|chào anh|chào chị)[!.]*$"),
    re.compile(r"^(tôi|mình|em) (tên|là) "),
)

QUESTION_PATTERNS = (
    re.compile(r"^(bạn|em|anh|chị) (là ai|tên gì|làm gì|ở đâu)"),
    re.compile(r"^(ai|gì|sao|tại sao|như thế nào|thế nào)\b"),
    re.compile(r"^(có thể|bạn có thể) (giúp|hỗ trợ|làm gì)"),
)

NON_TASK_PATTERNS = (
    re.compile(r"^(chào|hi|hello)!*$"),
    re.compile(r"^(thế nào|như thế nào|sao|tình hình)\b"),
    re.compile(r"^(cảm ơn|thanks|thank you|tạm biệt|bye|chào tạm biệt|ok|okay)[!.]*$"),
    re.compile(r"\b(thời tiết|weather|ăn gì|uống gì|mệt quá|buồn quá)\b"),
)

# Each group counts at most once
TASK_INDICATORS = (
    re.compile(r"(\d{1,2}:\d{2}|\d{1,2}h\d{0,2}\b|\b(sáng|chiều|tối|ngày mai|hôm nay|tuần sau)\b)"),
    re.compile(r"\b(gặp|họp|meeting|call|gọi|làm|thực hiện|hoàn thành|submit|nộp|deadline)\b"),
    re.compile(r"\b(lịch|calendar|cuộc họp|appointment|sự kiện|event|task|nhiệm vụ)\b"),
    re.compile(r"\b(với|cùng|tại|ở|phòng|zoom|teams|google meet)\b"),
)

TASK_DETAIL_REQUEST_PATTERNS = (
    re.compile(r"\b(thời gian|time|khi nào|lúc nào|mấy giờ|ngày nào)\b"),
    re.compile(r"\b(ai|who|với ai|cùng ai|người tham gia)\b"),
    re.compile(r"\b(ở đâu|where|tại đâu|địa điểm)\b"),
    re.compile(r"\b(mô tả|chi tiết|details|description)\b"),
)


def is_symbol_only(text: str) -> bool:
    """True when text has no letters or digits (emoji, punctuation)."""
    return not any(unicodedata.category(ch)[0] in ("L", "N") for ch in text)


class MessagePreFilter:
    """Classifies a message as likely-task, likely-not-task or uncertain."""

    def evaluate(self, message: str) -> PreFilterResult:
        """
        Run the pre-filter on a single message.

        Args:
            message: Raw chat message

        Returns:
            PreFilterResult with verdict, confidence and an optional canned reply
        """
        normalized = " ".join(message.strip().lower().split())

        if len(normalized) < 3:
            return PreFilterResult(
                is_task_likely=False,
                confidence=0.9,
                reason="Message too short",
                quick_reply=SHORT_MESSAGE_REPLY,
            )

        if is_symbol_only(normalized):
            return PreFilterResult(
                is_task_likely=False,
                confidence=0.9,
                reason="Emoji or punctuation only",
                quick_reply=EMOJI_REPLY,
            )

        if any(p.search(normalized) for p in GREETING_PATTERNS):
            return PreFilterResult(
                is_task_likely=False,
                confidence=0.85,
                reason="Pure greeting detected",
                quick_reply=GREETING_REPLY,
            )

        if any(p.search(normalized) for p in NON_TASK_PATTERNS):
            return PreFilterResult(
                is_task_likely=False,
                confidence=0.8,
                reason="Non-task pattern detected",
            )

        if any(p.search(normalized) for p in QUESTION_PATTERNS):
            return PreFilterResult(
                is_task_likely=False,
                confidence=0.75,
                reason="Question pattern detected (not task)",
                quick_reply=QUESTION_REPLY,
            )

        indicators = sum(1 for p in TASK_INDICATORS if p.search(normalized))
        if indicators >= 2:
            return PreFilterResult(
                is_task_likely=True,
                confidence=0.9,
                reason=f"Multiple task indicators found ({indicators})",
            )
        if indicators == 1:
            return PreFilterResult(
                is_task_likely=True,
                confidence=0.7,
                reason=f"Task indicators found ({indicators})",
            )

        if len(normalized) > 20 and len(normalized.split(" ")) > 3:
            return PreFilterResult(
                is_task_likely=True,
                confidence=0.6,
                reason="Complex message - might contain task",
            )

        return PreFilterResult(
            is_task_likely=False,
            confidence=0.5,
            reason="Unclear intent - requires deeper analysis",
        )

    def evaluate_with_context(
        self, message: str, history: list[str] | None = None
    ) -> PreFilterResult:
        """Like evaluate(), but trusts replies to a question about task details."""
        result = self.evaluate(message)
        if not history or not message.strip():
            return result

        last = history[-1].lower()
        if any(p.search(last) for p in TASK_DETAIL_REQUEST_PATTERNS):
            logger.debug("Previous message asked for task details, treating as task")
            return PreFilterResult(
                is_task_likely=True,
                confidence=max(result.confidence, 0.8),
                reason="Following task detail request",
            )
        return result
