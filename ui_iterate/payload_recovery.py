"""
Payload Recovery: pull a structured record out of free-form model output.

Model replies wrap JSON in markdown fences, surround it with prose, and break
it in small ways (comments, trailing commas, single quotes, bare keys, raw
newlines in strings, truncation). Recovery runs an ordered cascade:

1. Isolate the payload (fenced block, else first balanced {...} span)
2. Repair it textually (idempotent, quote-aware)
3. Parse the whole record
4. Parse only the named sub-array (e.g. "components")
5. Parse individual item fragments ({"type": ...}) one by one
6. Fall back to a caller-supplied record

Nothing here raises; every path ends in a RecoveryResult.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ui_iterate.strategies import first_success

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(
    r"```[ \t]*(?:jsonc|json5?|javascript|js)?[ \t]*\r?\n?(.*?)```",
    re.DOTALL | re.IGNORECASE,
)
_OPEN_FENCE_RE = re.compile(r"```[ \t]*[A-Za-z0-9]*[ \t]*\r?\n?")
_JSON_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LOOSE_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_LITERALS = {
    "true": "true",
    "false": "false",
    "null": "null",
    "True": "true",
    "False": "false",
    "None": "null",
    "undefined": "null",
    "NaN": "NaN",
    "Infinity": "Infinity",
    "-Infinity": "-Infinity",
}

_STRING_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "{": "\\u007b",
    "}": "\\u007d",
    "[": "\\u005b",
    "]": "\\u005d",
}

# opener -> characters that may close it
_QUOTE_CLOSERS = {
    '"': ('"',),
    "“": ("”", "“", '"'),
    "”": ("”", "“", '"'),
    "'": ("'",),
    "‘": ("’", "‘", "'"),
    "’": ("’", "‘", "'"),
}
_CLOSER_FOLLOWERS = ",:}]/"
_HEX = "0123456789abcdefABCDEF"


@dataclass
class RecoveryResult:
    """Outcome of recover_payload."""

    data: Dict[str, Any]
    strategy: str  # "parse" | "sub_array" | "fragments" | "fallback"
    recovered: bool
    array_key: str = "components"

    @property
    def items(self) -> List[Any]:
        value = self.data.get(self.array_key)
        return value if isinstance(value, list) else []


# ==============================================================================
# STEP 1: PAYLOAD ISOLATION
# ==============================================================================


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the bracket matching text[start], or None if unbalanced.

    Only double-quoted strings are honored; apostrophes in prose are common
    enough that single quotes are not treated as delimiters here.
    """
    depth = 0
    in_string = False
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def strip_code_fence(text: str) -> Optional[str]:
    """Body of the first fenced code block, or None when there is no fence."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # Truncated reply: opening fence with no closing one
    opening = _OPEN_FENCE_RE.search(text)
    if opening:
        return text[opening.end():].strip()
    return None


def find_balanced_object(text: str) -> Optional[str]:
    """First balanced {...} span in text."""
    start = text.find("{")
    while start >= 0:
        end = _balanced_end(text, start)
        if end is not None:
            return text[start:end]
        start = text.find("{", start + 1)
    return None


def isolate_payload(text: str) -> str:
    """Best candidate substring for the structured payload."""
    body = strip_code_fence(text)
    if body is None:
        body = text
    body = body.strip()

    if body.startswith("["):
        end = _balanced_end(body, 0)
        if end is not None:
            return body[:end]

    span = find_balanced_object(body)
    if span is not None:
        return span

    # Unbalanced (usually truncated): keep everything from the first brace
    first = body.find("{")
    if first >= 0:
        return body[first:]
    return body


# ==============================================================================
# STEP 2: TEXTUAL REPAIR
# ==============================================================================


def _escape_char(ch: str) -> str:
    escaped = _STRING_ESCAPES.get(ch)
    if escaped is not None:
        return escaped
    if ord(ch) < 0x20:
        return "\\u%04x" % ord(ch)
    return ch


def _encode_string(content: str) -> str:
    return '"' + "".join(_escape_char(ch) for ch in content) + '"'


def _is_closing_quote(text: str, i: int) -> bool:
    """A quote closes a string only if what follows looks like JSON structure."""
    j = i + 1
    n = len(text)
    saw_newline = False
    while j < n and text[j].isspace():
        if text[j] == "\n":
            saw_newline = True
        j += 1
    if j >= n:
        return True
    if text[j] in _CLOSER_FOLLOWERS:
        return True
    # Newline-separated items missing a comma
    return saw_newline


def _normalize_literal(token: str) -> str:
    if token in _LITERALS:
        return _LITERALS[token]
    if _JSON_NUMBER_RE.fullmatch(token):
        return token
    if _LOOSE_NUMBER_RE.fullmatch(token):
        try:
            number = float(token)
        except ValueError:
            return _encode_string(token)
        if number == number and abs(number) != float("inf"):
            return repr(number)
    return _encode_string(token)


def _scan_string(text: str, i: int, out: List[str]) -> int:
    """Copy the string starting at text[i] as a JSON string; return next index."""
    opener = text[i]
    closers = _QUOTE_CLOSERS[opener]
    single = opener in ("'", "‘", "’")
    n = len(text)
    out.append('"')
    i += 1
    while i < n:
        ch = text[i]
        if ch == "\\":
            if i + 1 >= n:
                out.append("\\\\")
                i += 1
                continue
            nxt = text[i + 1]
            digits = text[i + 2:i + 6]
            if nxt == "u" and len(digits) == 4 and all(c in _HEX for c in digits):
                out.append(text[i:i + 6])
                i += 6
                continue
            if nxt in '"\\/bfnrt':
                out.append("\\" + nxt)
            elif nxt == "'":
                out.append("'")
            else:
                out.append("\\\\" + _escape_char(nxt))
            i += 2
            continue
        if ch in closers and _is_closing_quote(text, i):
            out.append('"')
            return i + 1
        if single and ch == '"':
            out.append('\\"')
        else:
            out.append(_escape_char(ch))
        i += 1
    # Unterminated string at end of input
    out.append('"')
    return n


def _last_significant(out: List[str]) -> Optional[str]:
    for piece in reversed(out):
        stripped = piece.rstrip()
        if stripped:
            return stripped[-1]
    return None


def _starts_comment(text: str, i: int) -> bool:
    return text[i] == "/" and i + 1 < len(text) and text[i + 1] in "/*"


def _skip_comment(text: str, i: int) -> int:
    if text[i + 1] == "/":
        end = text.find("\n", i)
        return len(text) if end < 0 else end
    end = text.find("*/", i + 2)
    return len(text) if end < 0 else end + 2


def _scan_structure(text: str) -> str:
    """Quote-aware pass: comments, quotes, bare keys/values, unclosed brackets."""
    out: List[str] = []
    stack: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            out.append(ch)
            i += 1
        elif ch in _QUOTE_CLOSERS:
            i = _scan_string(text, i, out)
        elif _starts_comment(text, i):
            i = _skip_comment(text, i)
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
            out.append(ch)
            i += 1
        elif ch in "}]":
            if stack and stack[-1] == ch:
                stack.pop()
            out.append(ch)
            i += 1
        elif ch in ",:":
            out.append(ch)
            i += 1
        else:
            i = _scan_bare_token(text, i, out, in_object=bool(stack) and stack[-1] == "}")
    while stack:
        out.append(stack.pop())
    return "".join(out)


def _scan_bare_token(text: str, i: int, out: List[str], in_object: bool) -> int:
    n = len(text)
    if in_object and _last_significant(out) in ("{", ","):
        j = i
        while j < n and text[j] not in ':,{}[]\n"' and not _starts_comment(text, j):
            j += 1
        if j < n and text[j] == ":":
            out.append(_encode_string(text[i:j].strip()))
            return j

    j = i
    while j < n and text[j] not in ",}]\n":
        if _starts_comment(text, j) and (j == i or text[j - 1].isspace()):
            break
        j += 1
    token = text[i:j].rstrip()
    if not token:
        # Lone stray character such as "/" that started no comment
        out.append(_encode_string(text[i]))
        return i + 1
    out.append(_normalize_literal(token))
    return i + len(token)


def _scan_commas(text: str) -> str:
    """Drop trailing/doubled commas and insert obviously missing ones."""
    out: List[str] = []
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            nxt = text[j] if j < n else None
            prev = _last_significant(out)
            if prev in (None, "[", "{", ",", ":") or nxt in (None, "]", "}", ","):
                i += 1
                continue
            out.append(ch)
            i += 1
            continue

        if ch in '{["':
            prev = _last_significant(out)
            if prev is not None and (prev in '}]"' or prev.isdigit()):
                out.append(",")
            if ch == '"':
                in_string = True
        out.append(ch)
        i += 1
    return "".join(out)


def repair_json_text(text: str) -> str:
    """Apply all textual repairs. repair(repair(t)) == repair(t)."""
    if not text:
        return text
    return _scan_commas(_scan_structure(text))


# ==============================================================================
# STEPS 3-5: PARSE CASCADE
# ==============================================================================


def _first_list_of_dicts(data: Dict[str, Any]) -> Optional[List[Any]]:
    for value in data.values():
        if isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
            return value
    return None


def _shape(parsed: Any, array_key: str, item_key: str) -> Optional[Dict[str, Any]]:
    """Coerce a parsed value into {array_key: [...]} or None."""
    if isinstance(parsed, list):
        return {array_key: parsed}
    if not isinstance(parsed, dict):
        return None
    if isinstance(parsed.get(array_key), list):
        return parsed
    if item_key in parsed:
        return {array_key: [parsed]}
    items = _first_list_of_dicts(parsed)
    if items is not None:
        shaped = dict(parsed)
        shaped[array_key] = items
        return shaped
    return None


def _parse_whole(repaired: str, array_key: str, item_key: str) -> Optional[Dict[str, Any]]:
    return _shape(json.loads(repaired), array_key, item_key)


def _parse_sub_array(repaired: str, array_key: str, item_key: str) -> Optional[Dict[str, Any]]:
    match = re.search(r'"%s"\s*:\s*\[' % re.escape(array_key), repaired)
    if not match:
        return None
    start = match.end() - 1
    end = _balanced_end(repaired, start)
    if end is None:
        return None
    items = json.loads(repaired[start:end])
    if not isinstance(items, list):
        return None
    return {array_key: items}


def _parse_fragments(repaired: str, array_key: str, item_key: str) -> Optional[Dict[str, Any]]:
    """Parse every balanced object carrying item_key; skip the broken ones."""
    items: List[Dict[str, Any]] = []
    key_pattern = '"%s"' % item_key
    i = 0
    n = len(repaired)
    while i < n:
        start = _next_object_start(repaired, i)
        if start is None:
            break
        end = _balanced_end(repaired, start)
        if end is not None:
            fragment = repaired[start:end]
            if key_pattern in fragment:
                try:
                    parsed = json.loads(fragment)
                except ValueError:
                    parsed = None
                if isinstance(parsed, dict) and item_key in parsed:
                    items.append(parsed)
                    i = end
                    continue
        i = start + 1
    if not items:
        return None
    return {array_key: items}


def _next_object_start(text: str, i: int) -> Optional[int]:
    in_string = False
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            return i
        i += 1
    return None


def recover_payload(
    text: Optional[str],
    array_key: str = "components",
    item_key: str = "type",
    fallback: Optional[Dict[str, Any]] = None,
) -> RecoveryResult:
    """
    Extract {array_key: [...]} from raw model text.

    Args:
        text: Raw model reply
        array_key: Name of the list the caller cares about
        item_key: Key every list item is expected to carry
        fallback: Record returned when nothing usable survives

    Returns:
        RecoveryResult; recovered=False means the fallback was used
    """
    fallback_data = fallback if fallback is not None else {array_key: []}

    if not text or not text.strip():
        return RecoveryResult(fallback_data, "fallback", False, array_key)

    candidate = isolate_payload(text)
    repaired = repair_json_text(candidate)

    def has_items(data: Any) -> bool:
        return isinstance(data, dict) and isinstance(data.get(array_key), list)

    hit = first_success(
        [
            ("parse", _parse_whole),
            ("sub_array", _parse_sub_array),
            ("fragments", _parse_fragments),
        ],
        repaired,
        array_key,
        item_key,
        accept=has_items,
        tolerate=(ValueError, RecursionError),
    )
    if hit is not None:
        logger.debug(
            "recover_payload: %s strategy yielded %d %s",
            hit.name, len(hit.value[array_key]), array_key,
        )
        return RecoveryResult(hit.value, hit.name, True, array_key)

    logger.warning(
        "recover_payload: no usable %s in model output, raw[:200]: %s",
        array_key, text[:200],
    )
    return RecoveryResult(fallback_data, "fallback", False, array_key)
