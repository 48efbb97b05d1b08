"""Clean raw backend output into the text returned to callers."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

START_OF_TEXT_TOKEN = "<|startoftext|>"
END_OF_TEXT_TOKEN = "<|endoftext|>"
SEPARATOR_TOKEN = "</s>"


def trim_prefix(text: str, prefix: str) -> str:
    if prefix and text.startswith(prefix):
        return text[len(prefix):]
    return text


def trim_suffix(text: str, suffix: str) -> str:
    if suffix and text.endswith(suffix):
        return text[: -len(suffix)]
    return text


def _clean_once(text: str, prompt: str, stops: Sequence[str]) -> str:
    text = trim_prefix(text, START_OF_TEXT_TOKEN)
    if prompt and text.startswith(prompt):
        # whitespace separating the echoed prompt from the continuation
        text = text[len(prompt):].lstrip()
    text = trim_suffix(text, SEPARATOR_TOKEN).rstrip()

    for stop in stops:
        if stop and text.endswith(stop):
            text = text[: -len(stop)].rstrip()
    return text


def clean_generated_text(
    raw_text: str,
    prompt: str,
    stop_sequences: Optional[Iterable[str]] = None,
) -> str:
    """Strip markers, the echoed prompt and trailing stop sequences.

    The prompt prefix is removed before any stop sequence so text copied from
    the prompt can never be mistaken for a stop match. Passes repeat until the
    text is stable, which makes the function idempotent even when several stop
    sequences are stacked at the end of the output.
    """

    stops = [*(stop_sequences or ()), END_OF_TEXT_TOKEN]
    text = raw_text
    while True:
        cleaned = _clean_once(text, prompt, stops)
        if cleaned == text:
            return cleaned
        text = cleaned
