"""Resolution of user task references (position, id, keyword) and batch expansion."""

import logging
import re
from collections.abc import Sequence

from .config import MAX_BATCH_RANGE
from .models import MatchMethod, Task, TaskMatch

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"(\d+)\s*-\s*(\d+)")
# "ID:17" always means the stored id, never a position
_EXPLICIT_ID_RE = re.compile(r"id\s*:\s*(\d+)", re.IGNORECASE)


def parse_batch_references(raw: str, max_range: int = MAX_BATCH_RANGE) -> list[str]:
    """
    Expand a batch reference string.

    "1,3,5" splits into ["1", "3", "5"]; "2-4" expands to ["2", "3", "4"] when
    1 <= a <= b <= max_range. Anything else comes back as [raw].
    """
    text = raw.strip()
    if "," in text:
        parts = [part.strip() for part in text.split(",")]
        return [part for part in parts if part]

    match = _RANGE_RE.fullmatch(text)
    if match:
        start, end = int(match.group(1)), int(match.group(2))
        if 1 <= start <= end <= max_range:
            return [str(i) for i in range(start, end + 1)]
        logger.debug(f"Range '{raw}' outside 1..{max_range}, kept as a single reference")

    return [raw]


class TaskReferenceResolver:
    """Finds the task a user means, against a snapshot in display order."""

    def resolve(
        self,
        reference: str,
        snapshot: Sequence[Task],
        id_pool: Sequence[Task] | None = None,
    ) -> TaskMatch | None:
        """
        Resolve one reference.

        Strategies, in order: explicit "ID:n", 1-based position, literal id,
        case-insensitive substring, fuzzy token match. A fuzzy match with
        several candidates returns the first one flagged as ambiguous.

        Args:
            reference: What the user typed ("2", "17", "báo cáo")
            snapshot: Tasks in the order the user last saw them
            id_pool: Tasks searched for literal ids, defaults to snapshot

        Returns:
            TaskMatch, or None when nothing matches
        """
        ref = reference.strip()
        if not ref:
            return None

        explicit = _EXPLICIT_ID_RE.fullmatch(ref)
        if explicit:
            number = int(explicit.group(1))
            for task in id_pool if id_pool is not None else snapshot:
                if task.id == number:
                    return TaskMatch(task=task, method=MatchMethod.ID)
            return None

        if ref.isascii() and ref.isdigit():
            number = int(ref)
            if 1 <= number <= len(snapshot):
                return TaskMatch(task=snapshot[number - 1], method=MatchMethod.POSITION)
            for task in id_pool if id_pool is not None else snapshot:
                if task.id == number:
                    return TaskMatch(task=task, method=MatchMethod.ID)

        lowered = ref.lower()
        for task in snapshot:
            if lowered in task.content.lower():
                return TaskMatch(task=task, method=MatchMethod.KEYWORD)

        tokens = [token for token in lowered.split() if len(token) > 2]
        if not tokens:
            return None
        candidates = [
            task
            for task in snapshot
            if any(token in task.content.lower() for token in tokens)
        ]
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                f"Reference '{reference}' is ambiguous: "
                f"{[task.id for task in candidates]}, using first"
            )
        return TaskMatch(
            task=candidates[0],
            method=MatchMethod.PARTIAL,
            ambiguous=len(candidates) > 1,
            candidates=candidates,
        )
