"""Helpers for pulling a JSON array out of a noisy model response."""

import json
import logging
import re
from typing import Any, List, Mapping, Optional

from .exceptions import InvalidResponseShape
from .models import TranslationResult

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")


def strip_code_fences(text: str) -> str:
    """Removes Markdown code-fence markers (```json, ```srt, ```)."""
    return _FENCE_RE.sub("", text).strip()


def repair(raw: str) -> str:
    """
    Best-effort extraction of a JSON array string from a model response.

    Strips code fences, then returns everything from the first ``[`` up to and
    including the last ``}`` with a closing ``]`` appended. This survives leading
    commentary and a truncated or missing closing bracket. It is not a parser: an
    array nested after the last object, or a ``}`` inside trailing prose, will give
    an unparseable result. Callers must parse the return value themselves.

    Returns:
        The candidate array text, or ``"[]"`` when no ``[`` is present.
    """
    text = strip_code_fences(raw or "")
    start = text.find("[")
    if start == -1:
        return "[]"
    end = text.rfind("}")
    if end < start:
        return "[]"
    return text[start:end + 1] + "]"


def _first_array(value: Any) -> Optional[list]:
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        # OpenAI's json_object mode wraps the array, e.g. {"translations": [...]}
        for item in value.values():
            if isinstance(item, list):
                return item
    return None


def load_json_array(raw: str) -> list:
    """
    Parses a model response into a Python list.

    The fence-stripped text is tried as-is first (unwrapping an object that holds
    an array), then the repaired text.

    Raises:
        InvalidResponseShape: If neither yields a JSON array.
    """
    if not raw or not raw.strip():
        raise InvalidResponseShape("Received empty response from the endpoint.")

    try:
        found = _first_array(json.loads(strip_code_fences(raw)))
        if found is not None:
            return found
    except json.JSONDecodeError:
        pass

    repaired = repair(raw)
    if repaired == "[]":
        # a genuine empty array was already accepted by the direct parse above
        raise InvalidResponseShape("No JSON array of objects found in the response.")
    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.debug(f"Unparseable response after repair: {repaired[:200]!r}")
        raise InvalidResponseShape(f"Response is not valid JSON: {e}") from e
    if not isinstance(parsed, list):
        raise InvalidResponseShape(f"Expected a JSON array, got {type(parsed).__name__}")
    return parsed


def parse_translation_results(raw: str) -> List[TranslationResult]:
    """
    Turns a raw translation response into TranslationResults.

    Entries without an integer-like ``id`` or a string ``text`` are dropped; the
    orchestrator only merges ids it asked for anyway.
    """
    results = []
    for entry in load_json_array(raw):
        if not isinstance(entry, Mapping):
            logger.debug(f"Ignoring non-object entry in translation response: {entry!r}")
            continue
        entry_id, text = entry.get("id"), entry.get("text")
        if isinstance(entry_id, bool) or not isinstance(text, str):
            logger.debug(f"Ignoring malformed translation entry: {entry!r}")
            continue
        try:
            results.append(TranslationResult(id=int(entry_id), text=text))
        except (TypeError, ValueError):
            logger.debug(f"Ignoring translation entry with non-numeric id: {entry!r}")
    return results
