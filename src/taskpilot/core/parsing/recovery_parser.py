"""
Recovery Parser - structured output extraction from model text.

Models are asked to answer with a single JSON object but frequently wrap it
in prose, emit real line breaks inside string values, leave keys unquoted,
use single quotes, or return ``tasks`` as a keyed mapping. ``parse_structured``
runs a staged pipeline where each stage only runs if the previous one failed:

1. ``extract_candidate`` - brace-balanced scan for the first object
2. ``escape_multiline_fields`` - escape line breaks in known text fields
3. direct ``json.loads``
4. ``repair_syntax`` - comment stripping, quote conversion, key quoting and
   normalization, then trailing comma removal
5. re-parse, or raise ``ParseError`` carrying the raw text

Every stage is a pure ``str -> str`` function and can be used on its own.
"""

import json
import re
from typing import Any, Callable, Iterable, Optional

import structlog

from taskpilot.core.domain.errors import ParseError

logger = structlog.get_logger()

MULTILINE_FIELDS = ("content", "thoughts", "reasoning", "description")
KNOWN_KEYS = ("plan", "tasks", "thoughts")

_STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)
_FALLBACK_OBJECT = re.compile(r"\{[\s\S]*?(plan|tasks)[\s\S]*\}", re.IGNORECASE)
_MULTILINE_FIELD = re.compile(
    r'"(' + "|".join(MULTILINE_FIELDS) + r')"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL
)
_KNOWN_KEY_NAMES = "|".join(KNOWN_KEYS)
_KNOWN_KEY = re.compile(
    r'(?P<literal>"(?:[^"\\]|\\.)*")|(?P<lead>[{,]\s*)'
    r'(?:"(?P<quoted>' + _KNOWN_KEY_NAMES + r')"|(?P<bare>' + _KNOWN_KEY_NAMES + r'))'
    r'\s*(?::\s*|\s+(?=[\[{"]))',
    re.IGNORECASE | re.DOTALL,
)
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)\s*:")
_SINGLE_QUOTED = re.compile(r"'((?:[^'\\]|\\.)*)'", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _sub_outside_strings(
    pattern: re.Pattern, repl: Any, text: str
) -> str:
    """Apply ``pattern.sub`` only to the parts of ``text`` outside "..." literals."""
    pieces = []
    last = 0
    for match in _STRING_LITERAL.finditer(text):
        pieces.append(pattern.sub(repl, text[last:match.start()]))
        pieces.append(match.group(0))
        last = match.end()
    pieces.append(pattern.sub(repl, text[last:]))
    return "".join(pieces)


def extract_candidate(text: str) -> Optional[str]:
    """
    Return the first brace-balanced object in ``text``.

    Braces inside double-quoted strings are ignored and backslash escapes
    are honoured, so trailing commentary after the object is tolerated.

    Returns:
        The candidate substring, or None if no balanced object exists.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def fallback_candidate(text: str) -> Optional[str]:
    """Loose search for an object mentioning a plan or tasks key."""
    match = _FALLBACK_OBJECT.search(text)
    return match.group(0) if match else None


def escape_multiline_fields(candidate: str) -> str:
    """Escape literal line breaks inside content/thoughts/reasoning/description values."""

    def _fix(match: re.Match) -> str:
        key, value = match.group(1), match.group(2)
        value = value.replace("\r\n", "\\n").replace("\n", "\\n").replace("\r", "\\n")
        return f'"{key}": "{value}"'

    return _MULTILINE_FIELD.sub(_fix, candidate)


def strip_line_comments(candidate: str) -> str:
    """Remove ``//`` comments that start outside string literals."""
    out = []
    in_string = False
    escaped = False
    index = 0
    length = len(candidate)
    while index < length:
        char = candidate[index]
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            index += 1
            continue
        if char == '"':
            in_string = True
        elif candidate.startswith("//", index):
            newline = candidate.find("\n", index)
            if newline == -1:
                break
            index = newline
            continue
        out.append(char)
        index += 1
    return "".join(out)


def normalize_known_keys(candidate: str) -> str:
    """
    Force ``plan``/``tasks``/``thoughts`` keys into ``"key": `` form.

    String literals are matched first and passed through unchanged, so key-like
    text inside values is never rewritten.
    """

    def _fix(match: re.Match) -> str:
        if match.group("literal") is not None:
            return match.group("literal")
        key = match.group("quoted") or match.group("bare")
        return f'{match.group("lead")}"{key.lower()}": '

    return _KNOWN_KEY.sub(_fix, candidate)


def quote_unquoted_keys(candidate: str) -> str:
    return _sub_outside_strings(_UNQUOTED_KEY, r'\1"\2":', candidate)


def convert_single_quotes(candidate: str) -> str:
    """Turn 'single quoted' keys and values into double quoted strings."""

    def _requote(match: re.Match) -> str:
        inner = match.group(1).replace("\\'", "'").replace('"', '\\"')
        return f'"{inner}"'

    return _sub_outside_strings(_SINGLE_QUOTED, _requote, candidate)


def remove_trailing_commas(candidate: str) -> str:
    return _sub_outside_strings(_TRAILING_COMMA, r"\1", candidate)


REPAIR_STAGES: tuple[Callable[[str], str], ...] = (
    strip_line_comments,
    convert_single_quotes,
    normalize_known_keys,
    quote_unquoted_keys,
    remove_trailing_commas,
)


def repair_syntax(candidate: str) -> str:
    """Run every syntactic repair stage in order."""
    for stage in REPAIR_STAGES:
        candidate = stage(candidate)
    return candidate


def coerce_task_mapping(data: Any) -> Any:
    """Turn ``{"tasks": {"0": {...}, "1": {...}}}`` into an ordered task list."""
    if isinstance(data, dict):
        tasks = data.get("tasks")
        if isinstance(tasks, dict) and tasks and all(
            isinstance(v, dict) for v in tasks.values()
        ):
            data["tasks"] = list(tasks.values())
    return data


def _loads(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def parse_structured(
    text: str, expect_any: Iterable[str] = ("plan", "tasks")
) -> dict[str, Any]:
    """
    Extract one structured object from free-form model text.

    Args:
        text: Raw model output
        expect_any: At least one of these keys must be present in the result.
            Pass an empty tuple to accept any object.

    Returns:
        Parsed object with a ``tasks`` mapping coerced to a list.

    Raises:
        ParseError: If no object could be recovered
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("Model returned no text", raw_text=text or "")

    candidate = extract_candidate(text) or fallback_candidate(text)
    if candidate is None:
        raise ParseError("No JSON object found in model output", raw_text=text)

    candidate = escape_multiline_fields(candidate)
    data = _loads(candidate)
    if data is None:
        repaired = repair_syntax(candidate)
        data = _loads(repaired)
        if data is None:
            logger.warning("structured_output_unrecoverable", preview=text[:200])
            raise ParseError("Model output is not valid JSON", raw_text=text)
        logger.debug("structured_output_repaired")

    if not isinstance(data, dict):
        raise ParseError("Model output is not a JSON object", raw_text=text)

    data = coerce_task_mapping(data)
    expected = tuple(expect_any)
    if expected and not any(key in data for key in expected):
        raise ParseError(
            f"Model output has none of the keys: {', '.join(expected)}",
            raw_text=text,
        )
    return data
