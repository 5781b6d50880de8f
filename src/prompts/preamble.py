"""
Removal of conversational preamble from generated text.

Models sometimes open with filler ("Sure, here is the report:") despite the
instructions; the gateway strips it from the first chunk of every response.
"""

import re
from typing import AsyncGenerator, AsyncIterable

_FILLER_SENTENCE = re.compile(
    r"^(Sure|Certainly|Okay|Absolutely|Here is|I've synthesized|I can help|As a specialized)"
    r".*?(\n|:|\.\s)",
    re.IGNORECASE,
)
_HERE_IS_THE_LINE = re.compile(
    r"^Here is the (academic|technical|lab|thesis|requested).*?:\n",
    re.IGNORECASE,
)


def _strip_once(text: str) -> str:
    cleaned = _FILLER_SENTENCE.sub("", text, count=1)
    cleaned = _HERE_IS_THE_LINE.sub("", cleaned, count=1).lstrip()

    if cleaned.lower().startswith("here is the"):
        _, _, rest = cleaned.partition("\n")
        cleaned = rest.lstrip()

    return cleaned


def strip_preamble(text: str) -> str:
    """
    Remove leading filler phrases and framing from ``text``.

    Stacked openers ("Sure. Absolutely, here is the report:") are removed
    until the head no longer changes, so stripping twice equals stripping
    once. Only the head of the text is touched; trailing whitespace is
    preserved so the result can be followed by further stream fragments.
    """
    cleaned = text or ""
    while cleaned:
        stripped = _strip_once(cleaned)
        if stripped == cleaned:
            break
        cleaned = stripped
    return cleaned


async def strip_stream_preamble(fragments: AsyncIterable[str]) -> AsyncGenerator[str, None]:
    """Yield ``fragments`` with the first non-empty one preamble-stripped."""
    first = True
    async for fragment in fragments:
        if not fragment:
            continue
        if first:
            first = False
            fragment = strip_preamble(fragment)
            if not fragment:
                continue
        yield fragment
