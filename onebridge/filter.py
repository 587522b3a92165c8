"""Event filter — decides which runtime events are forwarded.

A filter is one JSON document evaluated against each event:

    {"post_type": "message", ".or": [{"group_id": 123}, {"user_id": 456}]}

- Lists combine their children with the enclosing combinator.
- Keys starting with "." pick an operator (.and .or .not .eq .neq .in
  .contains .regex); any other key binds that event field and compares
  with eq.
- Nested objects without an operator default to "and".
- Unknown operators match everything.

Evaluation is fail-closed: anything that raises counts as "no match".
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from .errors import FilterEvaluationFailure, FilterLoadFailure

logger = logging.getLogger("onebridge.filter")

_COMBINATORS = ("and", "or", "not")
_OPERATOR_MARK = "."

# Event field that is not present at all (JS undefined)
_ABSENT = object()

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": 0,
    "u": 0,
    "y": 0,
}


def matches(rule: Any, event: dict) -> bool:
    """Evaluate a filter rule against one event.

    Args:
        rule: Parsed filter document, or None when filtering is off.
        event: Event record (not modified).

    Returns:
        True if the event should be forwarded.
    """
    if not rule:
        return True
    try:
        return _evaluate(rule, "and", None, event)
    except Exception as e:
        failure = FilterEvaluationFailure(f"{type(e).__name__}: {e}")
        logger.debug(f"Filter evaluation failed, dropping event: {failure}")
        return False


def _evaluate(value: Any, op: str, field: Optional[str], event: dict) -> bool:
    if op in _COMBINATORS:
        if isinstance(value, list):
            children = [(child, "and", field) for child in value]
        elif isinstance(value, dict):
            children = [
                (sub, key[1:], field) if key.startswith(_OPERATOR_MARK) else (sub, "eq", key)
                for key, sub in value.items()
            ]
        else:
            return False

        for child_value, child_op, child_field in children:
            matched = _evaluate(child_value, child_op, child_field, event)
            if not matched and op == "and":
                return False
            if matched and op == "not":
                return False
            if matched and op == "or":
                return True
        # Empty "or" is vacuously true, non-empty "or" without a hit is false
        return op != "or" or not children

    if isinstance(value, dict):
        return _evaluate(value, "and", field, event)

    actual = event.get(field, _ABSENT)

    if op == "eq":
        return _strict_equal(value, actual)
    if op == "neq":
        return not _strict_equal(value, actual)
    if op == "in":
        return _includes(value, actual)
    if op == "contains":
        return _includes(actual, value)
    if op == "regex":
        return _compile(value).search(actual) is not None

    return True


def _strict_equal(a: Any, b: Any) -> bool:
    """Equality without Python's bool/int and container coercions."""
    if a is _ABSENT or b is _ABSENT:
        return a is b
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def _includes(container: Any, item: Any) -> bool:
    if isinstance(container, str):
        if not isinstance(item, str):
            raise TypeError(f"cannot search a string for {type(item).__name__}")
        return item in container
    if isinstance(container, list):
        return any(_strict_equal(element, item) for element in container)
    raise TypeError(f"{type(container).__name__} does not support containment")


def _compile(value: str) -> re.Pattern:
    """Compile a "/pattern/flags" (or bare "pattern") string."""
    if not isinstance(value, str):
        raise TypeError("regex rule must be a string")
    body, flags = value, ""
    if value.startswith("/") and value.count("/") >= 2:
        body, flags = value[1:].rsplit("/", 1)
    compiled_flags = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            raise ValueError(f"invalid regex flag '{flag}'")
        compiled_flags |= _REGEX_FLAGS[flag]
    return re.compile(body, compiled_flags)


def load_filter(path: str) -> Optional[Any]:
    """Load a filter document from disk.

    Returns None (filtering disabled) if the file cannot be read or
    parsed. Never raises.
    """
    try:
        rule = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        failure = FilterLoadFailure(f"{path}: {e}")
        logger.error(f"Event filter failed to load, no filtering will be applied: {failure}")
        return None
    logger.info(f"Event filter loaded from {path}")
    return rule
