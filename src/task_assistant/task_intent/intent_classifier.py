"""Multi-stage intent classifier: pre-filter, patterns, cache, remote NLU, fallback."""

import asyncio
import logging
import re
import time
from collections import Counter
from collections.abc import Callable
from datetime import date
from typing import Any

from .config import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_REMOTE_TIMEOUT,
    NO_PATTERN_CONFIDENCE,
    PATTERN_ACCEPT_CONFIDENCE,
    PREFILTER_SHORT_CIRCUIT_CONFIDENCE,
)
from .exceptions import ExternalServiceError
from .fallback import ProgressiveFallback
from .interfaces import RemoteNLU
from .models import (
    ClassificationDiagnostics,
    ClassificationOutcome,
    FieldIntent,
    FieldParseResult,
    ParseResult,
    ParseSource,
    PreFilterResult,
    TaskInfo,
)
from .parse_cache import ParseCache
from .patterns import (
    CONFIRM_PATTERN,
    SKIP_PATTERN,
    categorize_task_type,
    clean_title,
    extract_emails,
    is_cancel_reply,
    match_patterns,
    parse_date_expression,
    parse_time_expression,
    parse_time_range,
    split_people,
)
from .prefilter import SHORT_MESSAGE_REPLY, MessagePreFilter

logger = logging.getLogger(__name__)


class IntentClassifier:
    """
    Turns a raw chat message into a ParseResult with as few remote calls as possible.

    Stages short-circuit on the first one that clears its confidence bar:
    pre-filter, pattern rules, cache, remote NLU. Remote failures degrade to
    the local progressive fallback. classify() and parse_field() never raise.
    """

    def __init__(
        self,
        remote: RemoteNLU | None = None,
        cache: ParseCache | None = None,
        prefilter: MessagePreFilter | None = None,
        fallback: ProgressiveFallback | None = None,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        pattern_accept_confidence: float = PATTERN_ACCEPT_CONFIDENCE,
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
        today: Callable[[], date] = date.today,
    ) -> None:
        """
        Initialize the classifier.

        Args:
            remote: Remote NLU collaborator (None disables remote calls)
            cache: Parse cache, a default-sized one is created if omitted
            prefilter: Pre-filter heuristics
            fallback: Local fallback chain
            confidence_threshold: Below this the remote NLU is consulted
            pattern_accept_confidence: Pattern results at or above this are final
            remote_timeout: Hard timeout in seconds for one remote call
            today: Source of the current date for relative date parsing
        """
        self._remote = remote
        self._cache = cache if cache is not None else ParseCache()
        self._prefilter = prefilter or MessagePreFilter()
        self._fallback = fallback or ProgressiveFallback()
        self.confidence_threshold = confidence_threshold
        self.pattern_accept_confidence = pattern_accept_confidence
        self.remote_timeout = remote_timeout
        self._today = today
        self.stats: Counter[str] = Counter()

    @property
    def cache(self) -> ParseCache:
        return self._cache

    async def classify(
        self, message: str, user_id: str, recent_history: list[str] | None = None
    ) -> ClassificationOutcome:
        """
        Classify a chat message.

        Args:
            message: Raw message text
            user_id: Sender, used for logging only
            recent_history: Recent messages of the conversation, oldest first

        Returns:
            ClassificationOutcome with the ParseResult and stage diagnostics
        """
        start_time = time.time()
        diagnostics = ClassificationDiagnostics()
        success = True

        try:
            result = await self._classify(message, recent_history, diagnostics)
        except Exception as e:
            # Last-resort guard: classification must never take the host down
            logger.error(f"Classification failed for user {user_id}: {e}")
            outcome = self._fallback.run(message, e, self._today())
            diagnostics.fallback_level = outcome.level
            diagnostics.stages.append("fallback")
            result = outcome.result
            success = False

        diagnostics.processing_time = time.time() - start_time
        self.stats[result.source.value] += 1
        logger.info(
            f"📊 [{user_id}] is_task={result.is_task} command={result.command} "
            f"confidence={result.confidence:.2f} source={result.source.value} "
            f"stages={'>'.join(diagnostics.stages)}"
        )
        return ClassificationOutcome(success=success, result=result, diagnostics=diagnostics)

    async def _classify(
        self,
        message: str,
        history: list[str] | None,
        diagnostics: ClassificationDiagnostics,
    ) -> ParseResult:
        text = message.strip()
        today = self._today()

        if not text:
            diagnostics.stages.append("prefilter")
            return ParseResult(
                is_task=False,
                confidence=0.9,
                source=ParseSource.PATTERN,
                reasoning="Empty message",
                quick_reply=SHORT_MESSAGE_REPLY,
                rule_name="prefilter",
            )

        prefilter_result = None
        if not text.startswith("/"):
            diagnostics.stages.append("prefilter")
            prefilter_result = self._prefilter.evaluate_with_context(text, history)
            diagnostics.prefilter = prefilter_result
            if (
                not prefilter_result.is_task_likely
                and prefilter_result.confidence >= PREFILTER_SHORT_CIRCUIT_CONFIDENCE
            ):
                return ParseResult(
                    is_task=False,
                    confidence=prefilter_result.confidence,
                    source=ParseSource.PATTERN,
                    reasoning=f"Pre-filter: {prefilter_result.reason}",
                    quick_reply=prefilter_result.quick_reply,
                    rule_name="prefilter",
                )

        diagnostics.stages.append("pattern")
        pattern_result = match_patterns(
            text, today, no_match_confidence=NO_PATTERN_CONFIDENCE
        )
        if pattern_result.command is not None:
            return pattern_result
        if pattern_result.confidence >= self.pattern_accept_confidence:
            return pattern_result

        diagnostics.stages.append("cache")
        cached = self._cache.get(text)
        if cached is not None:
            diagnostics.cache_hit = True
            return cached

        if pattern_result.confidence >= self.confidence_threshold:
            return pattern_result

        if self._remote is None:
            diagnostics.stages.append("fallback")
            return self._run_fallback(text, None, prefilter_result, diagnostics, today)

        diagnostics.stages.append("remote")
        diagnostics.remote_called = True
        try:
            extraction = await asyncio.wait_for(
                self._remote.extract_task(text), timeout=self.remote_timeout
            )
        except (TimeoutError, ExternalServiceError) as e:
            diagnostics.remote_error = str(e) or type(e).__name__
            diagnostics.stages.append("fallback")
            return self._run_fallback(text, e, prefilter_result, diagnostics, today)

        task = extraction.task
        if task is not None and not task.title:
            task.title = clean_title(text) or text
        result = ParseResult(
            is_task=extraction.is_task and task is not None,
            confidence=extraction.confidence,
            source=ParseSource.REMOTE,
            reasoning=extraction.reasoning or "Remote NLU extraction",
            task=task,
        )
        if not result.is_task and prefilter_result and prefilter_result.quick_reply:
            result.quick_reply = prefilter_result.quick_reply
        self._cache.put(text, result)
        return result

    def _run_fallback(
        self,
        text: str,
        error: Exception | None,
        prefilter_result: PreFilterResult | None,
        diagnostics: ClassificationDiagnostics,
        today: date,
    ) -> ParseResult:
        outcome = self._fallback.run(text, error, today)
        diagnostics.fallback_level = outcome.level
        result = outcome.result
        if not result.is_task and prefilter_result and prefilter_result.quick_reply:
            result.quick_reply = prefilter_result.quick_reply
        return result

    async def parse_field(
        self, reply: str, expected_field: str, context: TaskInfo | None = None
    ) -> FieldParseResult:
        """
        Interpret a reply given while the conversation waits for one field.

        Local vocabulary and parsers run first; the remote NLU is consulted only
        when the reply stays unclear.

        Args:
            reply: User reply
            expected_field: Field being collected (title, due_date, time, attendees,
                confirmation)
            context: Task collected so far

        Returns:
            FieldParseResult with the intent and any field values found
        """
        result = self._parse_field_locally(reply, expected_field)
        if result.intent != FieldIntent.UNCLEAR or self._remote is None:
            return result

        try:
            remote_result = await asyncio.wait_for(
                self._remote.parse_field(
                    reply, expected_field, self._context_dict(context)
                ),
                timeout=self.remote_timeout,
            )
        except (TimeoutError, ExternalServiceError) as e:
            logger.warning(f"Remote field parsing failed, keeping local result: {e}")
            return result
        except Exception as e:
            logger.error(f"Unexpected error from remote field parser: {e}")
            return result

        logger.debug(
            f"Remote field parse: intent={remote_result.intent.value} "
            f"confidence={remote_result.confidence:.2f}"
        )
        return remote_result

    def _parse_field_locally(self, reply: str, expected_field: str) -> FieldParseResult:
        text = reply.strip()
        lowered = text.lower()
        today = self._today()

        if not text:
            return FieldParseResult(FieldIntent.UNCLEAR, 0.0, reasoning="Empty reply")
        if is_cancel_reply(text) or "hủy" in lowered or "cancel" in lowered:
            return FieldParseResult(FieldIntent.CANCEL, 0.95, reasoning="Cancel keyword")
        if SKIP_PATTERN.search(lowered):
            return FieldParseResult(FieldIntent.SKIP, 0.9, reasoning="Skip keyword")
        if expected_field == "confirmation":
            if CONFIRM_PATTERN.search(lowered):
                return FieldParseResult(FieldIntent.CONFIRM, 0.9, reasoning="Confirmation")
            return FieldParseResult(FieldIntent.UNCLEAR, 0.3, reasoning="Not a yes/no")

        values: dict[str, Any] = {}
        due_date = parse_date_expression(text, today)
        if due_date:
            values["due_date"] = due_date
        start, end = parse_time_range(text)
        if start:
            values["start_time"] = values["due_time"] = start
            if end:
                values["end_time"] = end
        else:
            due_time = parse_time_expression(text)
            if due_time:
                values["due_time"] = due_time

        if expected_field == "attendees":
            names = re.sub(r"^(với|cùng|gồm|có)\s+", "", clean_title(text), flags=re.I)
            people = split_people(names)
            people += [e for e in extract_emails(text) if e not in people]
            if people:
                values["attendees"] = people
                return FieldParseResult(
                    FieldIntent.ATTENDEES, 0.85, values, reasoning="Attendee names"
                )

        if expected_field == "title":
            title = clean_title(text) or text
            values["title"] = title
            values["task_type"] = categorize_task_type(text).value
            return FieldParseResult(FieldIntent.CONTENT, 0.85, values, reasoning="Title")

        if "due_date" in values and expected_field == "due_date":
            return FieldParseResult(FieldIntent.DATE, 0.9, values, reasoning="Date found")
        if "due_time" in values and expected_field == "time":
            return FieldParseResult(FieldIntent.TIME, 0.9, values, reasoning="Time found")
        if "due_date" in values:
            return FieldParseResult(FieldIntent.DATE, 0.75, values, reasoning="Date found")
        if "due_time" in values:
            return FieldParseResult(FieldIntent.TIME, 0.75, values, reasoning="Time found")

        return FieldParseResult(
            FieldIntent.UNCLEAR, 0.3, reasoning=f"Nothing usable for {expected_field}"
        )

    @staticmethod
    def _context_dict(context: TaskInfo | None) -> dict[str, Any]:
        if context is None:
            return {}
        return {
            "title": context.title,
            "task_type": context.task_type.value,
            "due_date": context.due_date.isoformat() if context.due_date else None,
            "due_time": context.due_time.strftime("%H:%M") if context.due_time else None,
        }
