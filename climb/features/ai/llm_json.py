"""
Recover schema-valid JSON from free-form model output.

Handles:
- Clean JSON
- JSON in ```json blocks, or ``` blocks with no language tag
- JSON wrapped in prose (balanced-bracket scan)

Candidates are tried in that order; the first one that both decodes and
validates wins. Validation is strict: "85" is not a number and null is not
a string.
"""

import json
import re
from typing import Any, List, Literal, Optional, Type, TypeVar, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from climb.core.errors import UnparseableResponseError

T = TypeVar("T")
JsonShape = Literal["object", "array"]

CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

_DELIMITERS = {
    "object": ("{", "}"),
    "array": ("[", "]"),
}


def extract_balanced_json(text: str, shape: JsonShape) -> Optional[str]:
    """Return the first complete top-level {...} or [...] in `text`.

    Brackets inside double-quoted strings are ignored; a backslash escapes
    the next character inside a string.
    """
    open_char, close_char = _DELIMITERS[shape]
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == open_char:
            if depth == 0:
                start = i
            depth += 1
        elif char == close_char and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def collect_candidates(raw: str, shape: JsonShape) -> List[str]:
    candidates: List[str] = []

    trimmed = raw.strip()
    if trimmed:
        candidates.append(trimmed)

    for match in CODE_BLOCK_RE.finditer(raw):
        code = match.group(1).strip()
        if code:
            candidates.append(code)

    balanced = extract_balanced_json(raw, shape)
    if balanced:
        candidates.append(balanced)

    # dedupe, keep first occurrence
    return list(dict.fromkeys(candidates))


def parse_llm_json(raw: str, schema: Union[Type[T], TypeAdapter], shape: JsonShape) -> T:
    """Parse `raw` model text into a value validated by `schema`.

    `schema` is a pydantic model class, any type TypeAdapter accepts, or a
    ready TypeAdapter.

    Raises:
        UnparseableResponseError: no candidate decodes and validates
    """
    adapter = schema if isinstance(schema, TypeAdapter) else TypeAdapter(schema)
    reasons: List[str] = []

    for candidate in collect_candidates(raw or "", shape):
        try:
            value: Any = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        try:
            return adapter.validate_python(value, strict=True)
        except SchemaValidationError as exc:
            reasons.append(f"{exc.error_count()} validation error(s)")

    detail = f" ({'; '.join(reasons)})" if reasons else ""
    raise UnparseableResponseError(f"Could not parse structured JSON from model response{detail}")
