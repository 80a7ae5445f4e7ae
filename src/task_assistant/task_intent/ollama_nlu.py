"""Remote NLU backed by a local Ollama model."""

import asyncio
import logging
import time
import tomllib
from datetime import date, datetime, timedelta
from datetime import time as dt_time
from typing import Any

import ollama

from .config import (
    DEFAULT_EXTRACTION_PROMPT,
    DEFAULT_FIELD_PROMPT,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MAX_RETRIES,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_TEMPERATURE,
    DEFAULT_OLLAMA_TIMEOUT,
)
from .exceptions import ExternalServiceError, RemoteTimeoutError
from .interfaces import RemoteNLU
from .models import (
    FieldIntent,
    FieldParseResult,
    TaskExtractionResult,
    TaskInfo,
    TaskType,
)

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = (
    "thứ hai",
    "thứ ba",
    "thứ tư",
    "thứ năm",
    "thứ sáu",
    "thứ bảy",
    "chủ nhật",
)


def _sanitize(text: str) -> str:
    # Keep the user text on one quoted line of the prompt
    return text.replace("\n", " ").replace('"', "'")[:500]


def _strip_fences(text: str) -> str:
    lines = text.strip().splitlines()
    if lines and lines[0].startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines)


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"Invalid date from model: {value!r}")
        return None


def _parse_time(value: Any) -> dt_time | None:
    if not value:
        return None
    try:
        return datetime.strptime(str(value).strip()[:5], "%H:%M").time()
    except ValueError:
        logger.warning(f"Invalid time from model: {value!r}")
        return None


class OllamaNLU(RemoteNLU):
    """Extracts tasks and interprets replies with a local LLM via Ollama."""

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        timeout: float = DEFAULT_OLLAMA_TIMEOUT,
        max_retries: int = DEFAULT_OLLAMA_MAX_RETRIES,
        temperature: float = DEFAULT_OLLAMA_TEMPERATURE,
        extraction_prompt: str = DEFAULT_EXTRACTION_PROMPT,
        field_prompt: str = DEFAULT_FIELD_PROMPT,
    ) -> None:
        """
        Initialize the Ollama client.

        Args:
            model: Ollama model name
            base_url: Ollama service URL
            timeout: Request timeout in seconds, per attempt
            max_retries: Maximum attempts on timeout
            temperature: LLM temperature for generation
            extraction_prompt: Template for whole-message extraction
            field_prompt: Template for field-mode replies
        """
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.temperature = temperature
        self.extraction_prompt = extraction_prompt
        self.field_prompt = field_prompt
        self._client = ollama.AsyncClient(host=base_url)

    def _date_context(self) -> dict[str, str]:
        today = date.today()
        return {
            "today": today.isoformat(),
            "day_name": WEEKDAY_NAMES[today.weekday()],
            "tomorrow": (today + timedelta(days=1)).isoformat(),
        }

    def _generate_prompt(self, text: str) -> str:
        return self.extraction_prompt.format(
            text=_sanitize(text), **self._date_context()
        )

    def _generate_field_prompt(
        self, text: str, expected_field: str, context: dict[str, Any] | None
    ) -> str:
        known = ", ".join(f"{k}={v}" for k, v in (context or {}).items() if v)
        known = known or "no details"
        return self.field_prompt.format(
            text=_sanitize(text),
            expected_field=expected_field,
            context=_sanitize(known),
            **self._date_context(),
        )

    def _load_toml(self, response_text: str) -> dict[str, Any]:
        try:
            return tomllib.loads(_strip_fences(response_text))
        except tomllib.TOMLDecodeError as e:
            raise ExternalServiceError(f"Invalid TOML response: {e}") from e

    def _parse_extraction(self, response_text: str) -> TaskExtractionResult:
        """
        Parse the model's TOML answer for a whole message.

        Raises:
            ExternalServiceError: If the response is not usable
        """
        data = self._load_toml(response_text)
        if "is_task" not in data:
            raise ExternalServiceError("Missing required field: is_task")
        if "confidence" not in data:
            raise ExternalServiceError("Missing required field: confidence")

        task = None
        if data["is_task"]:
            try:
                task_type = TaskType(str(data.get("task_type", "task")).lower())
            except ValueError:
                logger.warning(f"Invalid task type '{data.get('task_type')}', using task")
                task_type = TaskType.TASK
            attendees = data.get("attendees") or []
            if isinstance(attendees, str):
                attendees = [a.strip() for a in attendees.split(",") if a.strip()]
            task = TaskInfo(
                title=str(data.get("title") or "").strip(),
                description=data.get("description") or None,
                due_date=_parse_date(data.get("due_date")),
                due_time=_parse_time(data.get("due_time")),
                end_time=_parse_time(data.get("end_time")),
                location=data.get("location") or None,
                attendees=[str(a) for a in attendees],
                task_type=task_type,
            )

        return TaskExtractionResult(
            is_task=bool(data["is_task"]),
            confidence=float(data["confidence"]),
            task=task,
            reasoning=str(data.get("reasoning", "")),
        )

    def _parse_field_response(self, response_text: str) -> FieldParseResult:
        data = self._load_toml(response_text)
        try:
            intent = FieldIntent(str(data.get("intent", "unclear")).lower())
        except ValueError:
            intent = FieldIntent.UNCLEAR

        value = data.get("value")
        fields: dict[str, Any] = {}
        if intent == FieldIntent.DATE and _parse_date(value):
            fields["due_date"] = _parse_date(value)
        elif intent == FieldIntent.TIME and _parse_time(value):
            fields["due_time"] = _parse_time(value)
        elif intent == FieldIntent.CONTENT and value:
            fields["title"] = str(value).strip()
        elif intent == FieldIntent.ATTENDEES:
            attendees = data.get("attendees") or ([value] if value else [])
            if attendees:
                fields["attendees"] = [str(a) for a in attendees]

        # A value intent without a usable value is no better than unclear
        value_intents = (
            FieldIntent.DATE,
            FieldIntent.TIME,
            FieldIntent.CONTENT,
            FieldIntent.ATTENDEES,
        )
        if intent in value_intents and not fields:
            intent = FieldIntent.UNCLEAR

        return FieldParseResult(
            intent=intent,
            confidence=float(data.get("confidence", 0.0)),
            fields=fields,
            reasoning=str(data.get("reasoning", "")),
        )

    async def _chat(self, prompt: str) -> str:
        """
        Send one prompt, retrying timeouts with exponential backoff.

        Raises:
            RemoteTimeoutError: If every attempt timed out
            ExternalServiceError: If the service fails
        """
        for attempt in range(self.max_retries):
            try:
                response = await asyncio.wait_for(
                    self._client.chat(
                        model=self.model,
                        messages=[{"role": "user", "content": prompt}],
                        options={"temperature": self.temperature},
                    ),
                    timeout=self.timeout,
                )
                return response["message"]["content"]

            except TimeoutError as e:
                logger.error(f"Timeout on attempt {attempt + 1}/{self.max_retries}: {e}")
                if attempt < self.max_retries - 1:
                    # Exponential backoff
                    await asyncio.sleep(2**attempt)
                else:
                    raise RemoteTimeoutError(
                        f"Max retries exceeded after {self.max_retries} attempts"
                    ) from e

            except ConnectionError as e:
                logger.error(f"Connection error: {e}")
                raise ExternalServiceError(f"Connection failed: {e}") from e

            except Exception as e:
                logger.error(f"Ollama error: {e}")
                raise ExternalServiceError(f"Remote NLU failed: {e}") from e

        raise RemoteTimeoutError(
            f"Max retries exceeded after {self.max_retries} attempts"
        )

    async def extract_task(self, text: str) -> TaskExtractionResult:
        """
        Extract a task from a whole message.

        Raises:
            ExternalServiceError: If the call fails or the answer is unusable
        """
        if not text or not text.strip():
            raise ExternalServiceError("Empty text provided for extraction")

        start_time = time.time()
        result = self._parse_extraction(await self._chat(self._generate_prompt(text)))
        logger.info(
            f"Remote extraction: is_task={result.is_task}, "
            f"confidence={result.confidence:.2f}, time={time.time() - start_time:.3f}s"
        )
        return result

    async def parse_field(
        self, text: str, expected_field: str, context: dict[str, Any] | None = None
    ) -> FieldParseResult:
        prompt = self._generate_field_prompt(text, expected_field, context)
        result = self._parse_field_response(await self._chat(prompt))
        logger.debug(
            f"Remote field parse for {expected_field}: {result.intent.value} "
            f"({result.confidence:.2f})"
        )
        return result
