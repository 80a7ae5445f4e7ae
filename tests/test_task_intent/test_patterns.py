"""Tests for the declarative pattern rules."""

from datetime import date, time

import pytest

from task_assistant.task_intent.models import ParseSource, TaskType
from task_assistant.task_intent.patterns import (
    categorize_task_type,
    clean_title,
    extract_attendees,
    extract_location,
    is_cancel_reply,
    match_patterns,
    next_weekday,
    parse_date_expression,
    parse_time_expression,
    parse_time_range,
    split_people,
)

# Wednesday
TODAY = date(2025, 5, 21)


@pytest.mark.unit
class TestTimeParsing:
    """Test cases for time-of-day expressions."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("15:00", time(15, 0)),
            ("lúc 9:30", time(9, 30)),
            ("15h", time(15, 0)),
            ("15h30", time(15, 30)),
            ("3 giờ chiều", time(15, 0)),
            ("8 giờ tối", time(20, 0)),
            ("10 giờ sáng", time(10, 0)),
            ("9am", time(9, 0)),
            ("2pm", time(14, 0)),
        ],
    )
    def test_explicit_times(self, text: str, expected: time) -> None:
        """Test explicit clock expressions."""
        assert parse_time_expression(text) == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("sáng", time(9, 0)),
            ("trưa", time(12, 0)),
            ("chiều", time(15, 0)),
            ("tối", time(19, 0)),
        ],
    )
    def test_bare_period_words_use_defaults(self, text: str, expected: time) -> None:
        """Test that a bare period word maps to its default hour."""
        assert parse_time_expression(text) == expected

    def test_no_time_returns_none(self) -> None:
        """Test text without any time expression."""
        assert parse_time_expression("mua sữa") is None

    def test_out_of_range_hour_rejected(self) -> None:
        """Test that 25:00 is not a valid time."""
        assert parse_time_expression("25:00") is None

    def test_time_range(self) -> None:
        """Test 'từ ... đến ...' ranges."""
        assert parse_time_range("từ 9h đến 10h30") == (time(9, 0), time(10, 30))
        assert parse_time_range("9:00-10:00") == (time(9, 0), time(10, 0))

    def test_no_range(self) -> None:
        """Test text without a range."""
        assert parse_time_range("lúc 9h") == (None, None)


@pytest.mark.unit
class TestDateParsing:
    """Test cases for relative and absolute dates."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("hôm nay", TODAY),
            ("ngày mai", date(2025, 5, 22)),
            ("ngày kia", date(2025, 5, 23)),
            ("tuần sau", date(2025, 5, 28)),
            ("thứ 6", date(2025, 5, 23)),
            ("chủ nhật", date(2025, 5, 25)),
            ("2025-06-01", date(2025, 6, 1)),
            ("26/5", date(2025, 5, 26)),
            ("1/2/2026", date(2026, 2, 1)),
        ],
    )
    def test_date_expressions(self, text: str, expected: date) -> None:
        """Test supported date expressions."""
        assert parse_date_expression(text, TODAY) == expected

    def test_past_day_month_rolls_to_next_year(self) -> None:
        """Test that a past D/M without year means next year."""
        assert parse_date_expression("1/1", TODAY) == date(2026, 1, 1)

    def test_same_weekday_means_next_week(self) -> None:
        """Test that the weekday of today resolves to next week."""
        assert next_weekday(TODAY, 2) == date(2025, 5, 28)
        assert parse_date_expression("thứ tư", TODAY) == date(2025, 5, 28)

    def test_invalid_calendar_date(self) -> None:
        """Test that 31/2 is rejected instead of raising."""
        assert parse_date_expression("31/2", TODAY) is None

    def test_no_date(self) -> None:
        """Test text without a date."""
        assert parse_date_expression("gọi cho Nam", TODAY) is None

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("sáng mai", date(2025, 5, 22)),
            ("tối nay", TODAY),
            ("mai", date(2025, 5, 22)),
            ("Gọi cho Mai", None),
            ("Gặp chị Mai ở quán cũ", None),
            ("nay em bận", None),
        ],
    )
    def test_mai_and_nay_need_a_date_word(self, text: str, expected: date | None) -> None:
        """Test that "Mai" as a name is not read as tomorrow."""
        assert parse_date_expression(text, TODAY) == expected


@pytest.mark.unit
class TestExtraction:
    """Test cases for attendee, location and title helpers."""

    def test_split_people(self) -> None:
        """Test splitting a list of names."""
        assert split_people("anh Nam, chị Lan và Minh") == ["anh Nam", "chị Lan", "Minh"]

    def test_extract_attendees_list(self) -> None:
        """Test a comma separated attendee list."""
        attendees = extract_attendees("Họp với anh Nam, chị Lan lúc 9h")
        assert attendees == ["anh Nam", "chị Lan"]

    def test_extract_attendees_email(self) -> None:
        """Test that e-mail addresses are kept whole."""
        attendees = extract_attendees("Họp với nam@example.com lúc 9h")
        assert attendees == ["nam@example.com"]

    def test_extract_location(self) -> None:
        """Test 'tại ...' locations."""
        assert extract_location("Họp tại phòng A, ngày mai") == "phòng A"
        assert extract_location("Họp qua zoom") == "zoom"
        assert extract_location("Mua sữa") is None

    def test_clean_title_strips_schedule(self) -> None:
        """Test that date and time phrases leave the title."""
        assert clean_title("Gửi báo cáo lúc 9h ngày mai") == "Gửi báo cáo"

    def test_categorize(self) -> None:
        """Test task type keywords."""
        assert categorize_task_type("Họp nhóm dự án") == TaskType.MEETING
        assert categorize_task_type("Gặp anh Nam lúc 9h") == TaskType.CALENDAR
        assert categorize_task_type("Viết báo cáo") == TaskType.TASK
        assert categorize_task_type("[meeting] sync") == TaskType.MEETING


@pytest.mark.unit
class TestMatchPatterns:
    """Test cases for the rule tables."""

    def test_meeting_with_time_and_date(self) -> None:
        """Test the meeting rule on a complete message."""
        result = match_patterns("Họp với khách hàng lúc 15:00 ngày mai", TODAY)

        assert result.is_task is True
        assert result.confidence == pytest.approx(0.9)
        assert result.source == ParseSource.PATTERN
        assert result.rule_name == "meeting_with_time"
        task = result.task
        assert task is not None
        assert task.title == "Họp với khách hàng"
        assert task.task_type == TaskType.MEETING
        assert task.due_date == date(2025, 5, 22)
        assert task.due_time == time(15, 0)
        assert task.attendees == ["khách hàng"]

    def test_deadline_rule(self) -> None:
        """Test the deadline rule."""
        result = match_patterns("Nộp báo cáo trước thứ 6", TODAY)

        assert result.rule_name == "deadline"
        assert result.confidence == pytest.approx(0.85)
        assert result.task.task_type == TaskType.TASK
        assert result.task.title == "Nộp báo cáo"
        assert result.task.due_date == date(2025, 5, 23)

    def test_call_rule(self) -> None:
        """Test the call rule."""
        result = match_patterns("Gọi cho anh Nam lúc 10h", TODAY)

        assert result.rule_name == "call_with_time"
        assert result.task.task_type == TaskType.CALENDAR
        assert result.task.due_time == time(10, 0)
        assert result.task.attendees == ["anh Nam"]

    def test_name_mai_leaves_date_unset(self) -> None:
        """Test that a person called Mai does not fill the due date."""
        meeting = match_patterns("Gặp chị Mai lúc 15:00", TODAY)
        call = match_patterns("Gọi cho Mai lúc 9h", TODAY)
        attendee = match_patterns("Họp với chị Mai lúc 9h ngày mai", TODAY)

        assert meeting.rule_name == "meeting_with_time"
        assert meeting.task.title == "Gặp chị Mai"
        assert meeting.task.due_time == time(15, 0)
        assert meeting.task.due_date is None
        assert call.task.attendees == ["Mai"]
        assert call.task.due_date is None
        assert attendee.task.attendees == ["chị Mai"]
        assert attendee.task.due_date == date(2025, 5, 22)

    def test_reminder_rule(self) -> None:
        """Test the reminder rule."""
        result = match_patterns("Nhắc tôi mua sữa ngày mai", TODAY)

        assert result.rule_name == "reminder"
        assert result.confidence == pytest.approx(0.8)
        assert result.task.title == "mua sữa"
        assert result.task.due_date == date(2025, 5, 22)

    def test_medium_rules_average(self) -> None:
        """Test that additive rules average their confidences."""
        result = match_patterns("Ăn trưa cùng Lan tại quán cũ", TODAY)

        assert result.is_task is True
        assert result.confidence == pytest.approx((0.6 + 0.65) / 2)
        assert result.task.attendees == ["Lan"]
        assert result.task.location == "quán cũ"

    def test_no_match(self) -> None:
        """Test the no-match result."""
        result = match_patterns("hôm qua trời đẹp quá", TODAY)

        assert result.is_task is False
        assert result.confidence == pytest.approx(0.3)
        assert result.task is None

    @pytest.mark.parametrize(
        "message,command,args",
        [
            ("/list", "list", ""),
            ("/done 1,2", "done", "1,2"),
            ("/xóa 3", "delete", "3"),
            ("/sửa 1 giờ:15:30", "edit", "1 giờ:15:30"),
            ("/hủy", "cancel", ""),
            ("danh sách", "list", ""),
            ("thống kê", "stats", ""),
            ("xóa 1-3", "delete", "1-3"),
            ("xong task 2", "done", "2"),
        ],
    )
    def test_commands(self, message: str, command: str, args: str) -> None:
        """Test slash and natural-language commands."""
        result = match_patterns(message, TODAY)

        assert result.command == command
        assert result.command_args == args
        assert result.is_task is False

    def test_cancel_vocabulary_is_exact(self) -> None:
        """Test that cancel words only match on their own."""
        assert is_cancel_reply("Không") is True
        assert is_cancel_reply(" /cancel ") is True
        assert is_cancel_reply("không cần") is False
