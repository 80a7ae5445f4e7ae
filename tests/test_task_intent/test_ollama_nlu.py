"""Tests for the Ollama-backed remote NLU."""

from datetime import date, time
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from task_assistant.task_intent.exceptions import ExternalServiceError, RemoteTimeoutError
from task_assistant.task_intent.models import FieldIntent, TaskType
from task_assistant.task_intent.ollama_nlu import OllamaNLU

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3


def to_toml(data: dict[str, Any]) -> str:
    """Convert dict to TOML format for testing."""
    lines = []
    for key, value in data.items():
        if value is None:
            continue
        elif isinstance(value, bool):
            lines.append(f"{key} = {str(value).lower()}")
        elif isinstance(value, (int, float)):
            lines.append(f"{key} = {value}")
        elif isinstance(value, str):
            lines.append(f'{key} = "{value}"')
        elif isinstance(value, list):
            items = ", ".join(f'"{item}"' for item in value)
            lines.append(f"{key} = [{items}]")
    return "\n".join(lines)


def chat_response(data: dict[str, Any]) -> dict[str, Any]:
    return {"message": {"content": to_toml(data)}}


@pytest.mark.unit
class TestOllamaConnection:
    """Test cases for Ollama connection management."""

    def test_initialization_with_default_config(self) -> None:
        """Test default configuration."""
        nlu = OllamaNLU()

        assert nlu.model == "llama3.2:3b"
        assert nlu.base_url == "http://localhost:11434"
        assert nlu.timeout == DEFAULT_TIMEOUT
        assert nlu.max_retries == DEFAULT_MAX_RETRIES

    @pytest.mark.asyncio
    async def test_connection_error_raises_external_service_error(self) -> None:
        """Test that connection errors surface as ExternalServiceError."""
        nlu = OllamaNLU()

        with patch("ollama.AsyncClient.chat", side_effect=ConnectionError("refused")):
            with pytest.raises(ExternalServiceError, match="Connection failed"):
                await nlu.extract_task("Họp lúc 9h")

    @pytest.mark.asyncio
    async def test_unexpected_error_raises_external_service_error(self) -> None:
        """Test that other client errors are wrapped too."""
        nlu = OllamaNLU()

        with patch("ollama.AsyncClient.chat", side_effect=Exception("model not found")):
            with pytest.raises(ExternalServiceError, match="model not found"):
                await nlu.extract_task("Họp lúc 9h")

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self) -> None:
        """Test that empty text never reaches the model."""
        nlu = OllamaNLU()

        with pytest.raises(ExternalServiceError, match="Empty text"):
            await nlu.extract_task("   ")


@pytest.mark.unit
class TestRetries:
    """Test cases for timeout retries."""

    @pytest.mark.asyncio
    async def test_retry_on_timeout(self) -> None:
        """Test that timeouts are retried until an answer arrives."""
        nlu = OllamaNLU(max_retries=DEFAULT_MAX_RETRIES)
        call_count = 0

        async def mock_chat(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count < DEFAULT_MAX_RETRIES:
                raise TimeoutError("Timeout")
            return chat_response({"is_task": True, "confidence": 0.9, "title": "Họp"})

        with patch("ollama.AsyncClient.chat", side_effect=mock_chat), patch(
            "asyncio.sleep", new=AsyncMock()
        ) as sleep:
            result = await nlu.extract_task("Họp")

        assert call_count == DEFAULT_MAX_RETRIES
        assert result.is_task is True
        assert [call.args[0] for call in sleep.await_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self) -> None:
        """Test that persistent timeouts raise RemoteTimeoutError."""
        nlu = OllamaNLU(max_retries=2)

        with patch("ollama.AsyncClient.chat", side_effect=TimeoutError("Timeout")), patch(
            "asyncio.sleep", new=AsyncMock()
        ):
            with pytest.raises(RemoteTimeoutError, match="Max retries exceeded"):
                await nlu.extract_task("Họp")


@pytest.mark.unit
class TestPromptGeneration:
    """Test cases for prompt generation."""

    def test_prompt_includes_message_and_dates(self) -> None:
        """Test that the prompt carries the text and today's date."""
        nlu = OllamaNLU()
        prompt = nlu._generate_prompt('Họp "gấp"\nlúc 9h')

        assert "Họp 'gấp' lúc 9h" in prompt
        assert date.today().isoformat() in prompt
        assert "is_task" in prompt

    def test_field_prompt_includes_expected_field(self) -> None:
        """Test the field-mode prompt."""
        nlu = OllamaNLU()
        prompt = nlu._generate_field_prompt("mai", "due_date", {"title": "Họp"})

        assert "due_date" in prompt
        assert "title=Họp" in prompt


@pytest.mark.unit
class TestResponseParsing:
    """Test cases for TOML response parsing."""

    def test_parse_full_extraction(self) -> None:
        """Test a complete meeting answer."""
        nlu = OllamaNLU()
        response = to_toml(
            {
                "is_task": True,
                "confidence": 0.92,
                "title": "Họp với khách hàng",
                "task_type": "meeting",
                "due_date": "2025-05-22",
                "due_time": "15:00",
                "attendees": ["khách hàng"],
                "reasoning": "meeting",
            }
        )

        result = nlu._parse_extraction(response)

        assert result.is_task is True
        assert result.confidence == pytest.approx(0.92)
        assert result.task.task_type == TaskType.MEETING
        assert result.task.due_date == date(2025, 5, 22)
        assert result.task.due_time == time(15, 0)
        assert result.task.attendees == ["khách hàng"]

    def test_parse_code_fenced_response(self) -> None:
        """Test that markdown fences around TOML are tolerated."""
        nlu = OllamaNLU()
        response = "```toml\nis_task = false\nconfidence = 0.8\n```"

        result = nlu._parse_extraction(response)

        assert result.is_task is False
        assert result.task is None

    def test_parse_invalid_values_are_dropped(self) -> None:
        """Test bad dates, times and task types."""
        nlu = OllamaNLU()
        response = to_toml(
            {
                "is_task": True,
                "confidence": 1.7,
                "title": "X",
                "task_type": "party",
                "due_date": "tomorrow",
                "due_time": "soon",
            }
        )

        result = nlu._parse_extraction(response)

        assert result.confidence == 1.0
        assert result.task.task_type == TaskType.TASK
        assert result.task.due_date is None
        assert result.task.due_time is None

    def test_parse_invalid_toml_raises_error(self) -> None:
        """Test that invalid TOML raises ExternalServiceError."""
        nlu = OllamaNLU()

        with pytest.raises(ExternalServiceError, match="Invalid TOML"):
            nlu._parse_extraction("not valid toml [[[[")

    def test_parse_missing_required_fields_raises_error(self) -> None:
        """Test that missing required fields raise ExternalServiceError."""
        nlu = OllamaNLU()

        with pytest.raises(ExternalServiceError, match="Missing required field"):
            nlu._parse_extraction("confidence = 0.9")

    def test_parse_field_date(self) -> None:
        """Test a date answer in field mode."""
        nlu = OllamaNLU()
        response = to_toml({"intent": "date", "confidence": 0.9, "value": "2025-05-23"})

        result = nlu._parse_field_response(response)

        assert result.intent == FieldIntent.DATE
        assert result.fields == {"due_date": date(2025, 5, 23)}

    def test_parse_field_value_intent_without_value(self) -> None:
        """Test that a time intent without a usable time becomes unclear."""
        nlu = OllamaNLU()
        response = to_toml({"intent": "time", "confidence": 0.9, "value": "later"})

        result = nlu._parse_field_response(response)

        assert result.intent == FieldIntent.UNCLEAR
        assert result.fields == {}

    @pytest.mark.asyncio
    async def test_parse_field_round_trip(self) -> None:
        """Test parse_field through the mocked client."""
        nlu = OllamaNLU()
        response = chat_response(
            {"intent": "attendees", "confidence": 0.8, "attendees": ["Nam", "Lan"]}
        )

        with patch("ollama.AsyncClient.chat", return_value=response):
            result = await nlu.parse_field("Nam và Lan", "attendees", {"title": "Họp"})

        assert result.intent == FieldIntent.ATTENDEES
        assert result.fields == {"attendees": ["Nam", "Lan"]}
