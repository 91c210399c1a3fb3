"""
Parsing, validation and repair of word-root analyses returned by the model.

The model is asked for a strict JSON object but routinely wraps it in prose or
code fences, uses Python literals, snake_case keys, the string "null" for a
missing prefix, or returns the wrong number of related words.  The pipeline
here is:

1. extract_and_clean_json_from_response  -> JSON text (or None)
2. json.loads                            -> dict
3. validate_root_analysis_result         -> ValidationOutcome
4. attempt_data_fix (when 3 fails)       -> RootAnalysisResult | None
5. validate_complete_root_analysis       -> ComponentCheck (errors + warnings)

``parse_root_analysis`` runs the whole chain and raises RootAnalysisError with
the HTTP status and message the routes return.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from fastapi import status
from pydantic import ValidationError

from app.exceptions import ApiError
from app.models.schemas import SAME_ROOT_COUNT, RootAnalysisResult, SameRootWord

logger = logging.getLogger(__name__)

_PREFIX_PLACEHOLDERS = frozenset({"", "null", "none", "nil", "n/a", "-", "undefined"})

# Normalised key (lower case, no separators) -> canonical camelCase key
_KEY_ALIASES: Dict[str, str] = {
    "vimeaning": "viMeaning",
    "meaning": "viMeaning",
    "vietnamesemeaning": "viMeaning",
    "translation": "viMeaning",
    "prefixtext": "prefixText",
    "prefix": "prefixText",
    "roottext": "rootText",
    "root": "rootText",
    "connection": "connection",
    "explanation": "connection",
    "sameroot": "sameRoot",
    "samerootwords": "sameRoot",
    "relatedwords": "sameRoot",
    "related": "sameRoot",
    "word": "word",
}

_TOP_LEVEL_KEYS = frozenset({"viMeaning", "prefixText", "rootText", "connection", "sameRoot"})

_SMART_QUOTES = {
    "“": '"',
    "”": '"',
    "„": '"',
    "‘": "'",
    "’": "'",
}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ValidationOutcome:
    success: bool
    data: Optional[RootAnalysisResult] = None
    error: Optional[str] = None
    details: List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class ComponentCheck:
    success: bool
    error: Optional[str] = None
    warnings: List[str] = dataclasses.field(default_factory=list)


class RootAnalysisError(ApiError):
    """A root analysis could not be produced; carries the HTTP mapping."""

    def __init__(
        self,
        message: str,
        details: Optional[List[str]] = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    ) -> None:
        super().__init__(status_code, message, details=details or [])


# ---------------------------------------------------------------------------
# 1. JSON extraction
# ---------------------------------------------------------------------------

_CLOSERS = {"{": "}", "[": "]"}


def _scan_object(text: str, start: int) -> Tuple[int, List[str], bool]:
    """
    Walk *text* from the ``{`` at *start*, honouring string literals.

    Returns the index of the matching ``}`` (-1 when the object never
    closes), the brackets still open at the end of the text, and whether
    the text ends inside a string.
    """
    stack: List[str] = []
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
            continue
        if ch == "\\" and in_string:
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in _CLOSERS:
            stack.append(ch)
        elif ch in "}]":
            if stack:
                stack.pop()
            if not stack:
                return i, stack, False
    return -1, stack, in_string


def _close_truncated(fragment: str, still_open: List[str], in_string: bool) -> str:
    """Close a cut-off object: end the open string, then each open bracket innermost first."""
    if in_string:
        fragment = fragment.rstrip("\\") + '"'
    fragment = fragment.rstrip().rstrip(",")
    return fragment + "".join(_CLOSERS[ch] for ch in reversed(still_open))


def _fix_json_issues(text: str) -> str:
    # Whole-line // comments
    text = re.sub(r"(?m)^\s*//[^\n]*$", "", text)
    # Trailing commas before ] or }
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    # Python literals in value position only
    text = re.sub(r"([:\[,]\s*)None\b", r"\1null", text)
    text = re.sub(r"([:\[,]\s*)True\b", r"\1true", text)
    text = re.sub(r"([:\[,]\s*)False\b", r"\1false", text)
    return text.strip()


def extract_and_clean_json_from_response(response: Optional[str]) -> Optional[str]:
    """
    Pull the JSON object out of a model response and repair common mangling.

    Handles markdown code fences, surrounding prose, smart quotes, trailing
    commas, ``//`` comment lines and Python ``None``/``True``/``False``.
    Returns None when no object can be found at all.  The returned text is
    not guaranteed to parse.
    """
    if not response or not response.strip():
        return None

    text = response.strip()

    fenced = re.search(r"```(?:json|JSON)?\s*(.*?)```", text, flags=re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()

    start = text.find("{")
    if start == -1:
        return None

    end, still_open, in_string = _scan_object(text, start)
    if end != -1:
        fragment = text[start : end + 1]
    else:
        # Truncated output: keep everything from the first brace and close it
        fragment = _close_truncated(text[start:], still_open, in_string)

    if _parses(fragment):
        return fragment

    repaired = _fix_json_issues(fragment)
    if _parses(repaired):
        return repaired

    # Smart quotes used as JSON delimiters; only touched as a last resort
    # because they are legitimate inside string values.
    for smart, plain in _SMART_QUOTES.items():
        repaired = repaired.replace(smart, plain)
    return repaired


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


# ---------------------------------------------------------------------------
# 2. Structural validation
# ---------------------------------------------------------------------------

def _format_errors(exc: ValidationError) -> List[str]:
    details = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        details.append(f"{loc}: {err.get('msg', '')}" if loc else err.get("msg", ""))
    return details


def _is_placeholder(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.strip().lower() in _PREFIX_PLACEHOLDERS


def validate_root_analysis_result(data: Any) -> ValidationOutcome:
    """
    Validate parsed model output against RootAnalysisResult.

    A placeholder prefix such as ``"null"`` counts as invalid so that the
    repair step gets a chance to normalise it.
    """
    if not isinstance(data, dict):
        return ValidationOutcome(
            success=False,
            error="Root analysis must be a JSON object",
            details=[f"Expected an object, got {type(data).__name__}"],
        )

    try:
        result = RootAnalysisResult.model_validate(data)
    except ValidationError as exc:
        return ValidationOutcome(
            success=False,
            error="Invalid root analysis structure",
            details=_format_errors(exc),
        )

    placeholders = []
    if _is_placeholder(result.prefix_text):
        placeholders.append(f"prefixText: placeholder {result.prefix_text!r} should be null")
    for i, item in enumerate(result.same_root):
        if _is_placeholder(item.prefix_text):
            placeholders.append(
                f"sameRoot.{i}.prefixText: placeholder {item.prefix_text!r} should be null"
            )
    if placeholders:
        return ValidationOutcome(
            success=False,
            error="Invalid root analysis structure",
            details=placeholders,
        )

    return ValidationOutcome(success=True, data=result)


# ---------------------------------------------------------------------------
# 3. Repair
# ---------------------------------------------------------------------------

def _canonical_key(key: Any) -> str:
    norm = re.sub(r"[\s_\-]", "", str(key)).lower()
    return _KEY_ALIASES.get(norm, str(key))


def _clean_text(value: Any) -> Any:
    if isinstance(value, str):
        return re.sub(r"\s+", " ", value).strip()
    return value


def _clean_prefix(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = _clean_text(str(value))
    return None if _is_placeholder(value) else value


def _normalise_entry(raw: Dict[str, Any]) -> Dict[str, Any]:
    entry = {_canonical_key(k): _clean_text(v) for k, v in raw.items()}
    entry["prefixText"] = _clean_prefix(entry.get("prefixText"))
    return entry


def _unwrap(data: Dict[str, Any]) -> Dict[str, Any]:
    """Descend into ``{"result": {...}}``-style wrappers."""
    for _ in range(3):
        keys = {_canonical_key(k) for k in data}
        if keys & _TOP_LEVEL_KEYS:
            return data
        nested = [v for v in data.values() if isinstance(v, dict)]
        if len(nested) != 1:
            return data
        data = nested[0]
    return data


def _related_words(raw: Any, analysed_word: Optional[str]) -> List[SameRootWord]:
    if isinstance(raw, dict):
        raw = list(raw.values())
    if not isinstance(raw, list):
        return []

    words: List[SameRootWord] = []
    seen = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            word = SameRootWord.model_validate(_normalise_entry(item))
        except ValidationError:
            continue
        key = word.word.lower()
        if key in seen or (analysed_word and key == analysed_word.lower()):
            continue
        seen.add(key)
        words.append(word)
    return words


def attempt_data_fix(data: Any) -> Optional[RootAnalysisResult]:
    """
    Best-effort repair of a structurally invalid analysis.

    Normalises key spellings, whitespace and placeholder prefixes, unwraps
    single-key wrappers, and rebuilds ``sameRoot`` from whatever valid entries
    exist (dropping malformed ones and duplicates, keeping the first
    SAME_ROOT_COUNT).  Returns None when the result still cannot be made valid.
    """
    if not isinstance(data, dict):
        return None

    data = _unwrap(data)
    fixed = {_canonical_key(k): _clean_text(v) for k, v in data.items()}
    fixed["prefixText"] = _clean_prefix(fixed.get("prefixText"))

    related = _related_words(fixed.get("sameRoot"), fixed.get("word"))
    if len(related) < SAME_ROOT_COUNT:
        logger.warning(
            "attempt_data_fix: only %d usable related words (need %d)",
            len(related),
            SAME_ROOT_COUNT,
        )
        return None
    if len(related) > SAME_ROOT_COUNT:
        logger.info("attempt_data_fix: truncating %d related words", len(related))
    fixed["sameRoot"] = [w.model_dump(by_alias=True) for w in related[:SAME_ROOT_COUNT]]
    fixed.pop("word", None)

    try:
        return RootAnalysisResult.model_validate(fixed)
    except ValidationError as exc:
        logger.warning("attempt_data_fix: still invalid: %s", _format_errors(exc))
        return None


# ---------------------------------------------------------------------------
# 4. Word decomposition checks
# ---------------------------------------------------------------------------

def validate_word_components(word: str, prefix: Optional[str], root: str) -> ComponentCheck:
    """
    Check that *root* (and *prefix*, if given) actually occur in *word*.

    Matching is case-insensitive.  The prefix must occur before the root.
    """
    w = (word or "").strip().lower()
    r = (root or "").strip().lower()

    if not r:
        return ComponentCheck(success=False, error="Root text is empty")
    if r not in w:
        return ComponentCheck(
            success=False,
            error=f'Root "{root}" does not appear in word "{word}"',
        )

    if prefix:
        p = prefix.strip().lower()
        start = w.find(p)
        if start == -1:
            return ComponentCheck(
                success=False,
                error=f'Prefix "{prefix}" does not appear in word "{word}"',
            )
        if w.find(r, start + len(p)) == -1:
            return ComponentCheck(
                success=False,
                error=f'Prefix "{prefix}" must come before root "{root}" in word "{word}"',
            )

    return ComponentCheck(success=True)


def validate_complete_root_analysis(
    result: RootAnalysisResult,
    selected_text: str,
) -> ComponentCheck:
    """
    Check the analysed word strictly and the related words softly.

    A bad decomposition of the selected word is an error; problems with
    related words only produce warnings.
    """
    main = validate_word_components(selected_text, result.prefix_text, result.root_text)
    if not main.success:
        return main

    warnings: List[str] = []
    seen = set()
    selected = selected_text.strip().lower()

    for i, item in enumerate(result.same_root):
        key = item.word.strip().lower()
        if key == selected:
            warnings.append(f'sameRoot[{i}] repeats the analysed word "{item.word}"')
        if key in seen:
            warnings.append(f'sameRoot[{i}] duplicates "{item.word}"')
        seen.add(key)

        check = validate_word_components(item.word, item.prefix_text, item.root_text)
        if not check.success:
            warnings.append(f"sameRoot[{i}]: {check.error}")

    return ComponentCheck(success=True, warnings=warnings)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

def parse_root_analysis(ai_response: str, selected_text: str) -> RootAnalysisResult:
    """
    Turn a raw model response into a checked RootAnalysisResult.

    Raises RootAnalysisError (500) with the message the API reports.
    """
    cleaned = extract_and_clean_json_from_response(ai_response)
    if not cleaned:
        logger.error("No JSON object in AI response: %.300s", ai_response)
        raise RootAnalysisError(
            "AI service returned invalid response format",
            ["No valid JSON structure found in response"],
        )

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Cleaned AI response is not valid JSON: %s", exc)
        raise RootAnalysisError(
            "AI service returned malformed JSON",
            ["JSON parsing failed after cleaning"],
        )

    outcome = validate_root_analysis_result(parsed)
    if outcome.success:
        analysis = outcome.data
    else:
        logger.warning("AI response validation failed: %s %s", outcome.error, outcome.details)
        analysis = attempt_data_fix(parsed)
        if analysis is None:
            raise RootAnalysisError(
                "AI service returned invalid data structure",
                outcome.details or [outcome.error or "Unknown validation error"],
            )
        logger.info("Repaired AI root analysis for %r", selected_text)

    check = validate_complete_root_analysis(analysis, selected_text)
    if not check.success:
        logger.error("Root analysis for %r is inconsistent: %s", selected_text, check.error)
        raise RootAnalysisError(
            "AI analysis contains logical errors",
            [check.error or "Word component validation failed"],
        )
    if check.warnings:
        logger.warning("Root analysis warnings for %r: %s", selected_text, check.warnings)

    return analysis
