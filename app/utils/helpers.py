"""
Common text helpers: sentence splitting and inline annotation merging.

Inline annotations are written into a sentence's ``annotatedText`` as
``[original text|meaning]``.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import re

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def split_sentences(text: str) -> List[str]:
    """
    Split paragraph text into sentences.

    Splits on whitespace that follows ``.``, ``!`` or ``?``; pieces are
    trimmed and empty ones dropped.
    """
    if not text:
        return []
    return [s.strip() for s in SENTENCE_BOUNDARY.split(text) if s.strip()]


def replace_first(text: str, old: str, new: str) -> str:
    if not old:
        return text
    return text.replace(old, new, 1)


def annotation_payload(annotated_text: str) -> Dict[str, Any]:
    """The JSON stored in ``Sentence.annotations``."""
    return {
        "annotatedText": annotated_text,
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


def existing_annotated_text(annotations: Optional[Dict[str, Any]]) -> Optional[str]:
    if isinstance(annotations, dict):
        value = annotations.get("annotatedText")
        if isinstance(value, str) and value:
            return value
    return None


def merge_retried_annotation(
    annotated_text: Optional[str],
    sentence_content: str,
    text: str,
    result: str,
) -> str:
    """
    Put a freshly generated ``[text|meaning]`` *result* into a sentence.

    Existing annotations of *text* are replaced; otherwise the first raw
    occurrence of *text* in the annotated text is; failing that the
    annotation is applied to the original sentence.
    """
    if annotated_text:
        pattern = re.compile(r"\[" + re.escape(text) + r"\|(.*?)\]")
        if pattern.search(annotated_text):
            return pattern.sub(lambda _m: result, annotated_text)
        if text in annotated_text:
            return replace_first(annotated_text, text, result)
    return replace_first(sentence_content, text, result)


def find_block(content: Any, block_id: str) -> int:
    """Index of the block with *block_id* in article content, or -1."""
    blocks = content.get("blocks") if isinstance(content, dict) else None
    if not isinstance(blocks, list):
        return -1
    for i, block in enumerate(blocks):
        if isinstance(block, dict) and block.get("id") == block_id:
            return i
    return -1
