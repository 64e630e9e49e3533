"""Delta accumulation and reasoning-section detection.

Models may embed their deliberation inline, wrapped in literal sentinels:

    [THINK]reasoning text[/THINK]visible answer

This module owns that in-band convention so nothing downstream needs to know
the delimiters:
- split_reasoning: full-text reference split of an accumulated response
- SentinelReasoningSplitter: incremental equivalent that remembers sentinel positions
- DeltaAccumulator: per-response buffer returning (reasoning, answer) after each delta

Once the open sentinel appears anywhere in the text, the text is cut at every
occurrence of either sentinel. Reasoning is the segment after the first
occurrence and the answer is the segment after the second one (up to a third
occurrence, if any). This means:
- text before the first sentinel is hidden
- a close sentinel seen before any open sentinel still counts as a cut
- a nested open sentinel ends the reasoning segment like a close would
Without an open sentinel the whole text is the answer. The first close
sentinel after the first cut ends the scan: any sentinel after it is ordinary
answer text, so reasoning never re-opens.
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple, Optional, Sequence

LOGGER = logging.getLogger(__name__)

REASONING_OPEN = "[THINK]"
REASONING_CLOSE = "[/THINK]"


class AccumulatedText(NamedTuple):
    reasoning: str
    answer: str


def _sentinel_pattern(open_marker: str, close_marker: str) -> re.Pattern[str]:
    return re.compile(f"{re.escape(open_marker)}|{re.escape(close_marker)}")


def _segments(text: str, spans: Sequence[tuple[int, int]]) -> AccumulatedText:
    reasoning_end = spans[1][0] if len(spans) > 1 else len(text)
    reasoning = text[spans[0][1]:reasoning_end]
    if len(spans) < 2:
        return AccumulatedText(reasoning, "")
    answer_end = spans[2][0] if len(spans) > 2 else len(text)
    return AccumulatedText(reasoning, text[spans[1][1]:answer_end])


def split_reasoning(
    full_text: str,
    *,
    open_marker: str = REASONING_OPEN,
    close_marker: str = REASONING_CLOSE,
) -> AccumulatedText:
    """Split an accumulated response into its reasoning and answer parts."""
    if open_marker not in full_text:
        return AccumulatedText("", full_text)
    spans: list[tuple[int, int]] = []
    for match in _sentinel_pattern(open_marker, close_marker).finditer(full_text):
        spans.append(match.span())
        if match.group() == close_marker and len(spans) > 1:
            break
    return _segments(full_text, spans)


class SentinelReasoningSplitter:
    """Incremental ``split_reasoning``.

    Only the tail that could complete a sentinel is re-scanned on each append,
    so a response costs O(n) overall instead of O(n^2). The output after every
    append equals ``split_reasoning`` over the same text.
    """

    def __init__(self, open_marker: str = REASONING_OPEN, close_marker: str = REASONING_CLOSE):
        if not open_marker or not close_marker:
            raise ValueError("Reasoning sentinels must be non-empty strings.")
        self.open_marker = open_marker
        self.close_marker = close_marker
        self._pattern = _sentinel_pattern(open_marker, close_marker)
        self._overlap = max(len(open_marker), len(close_marker)) - 1
        self._text = ""
        self._open_seen = False
        self._spans: list[tuple[int, int]] = []
        self._resume = 0
        self._finished = False

    @property
    def full_text(self) -> str:
        return self._text

    @property
    def reasoning_open(self) -> bool:
        """True while reasoning text is still being collected."""
        return self._open_seen and len(self._spans) < 2

    @property
    def reasoning_closed(self) -> bool:
        return self._open_seen and len(self._spans) >= 2

    def feed(self, fragment: str) -> AccumulatedText:
        if fragment:
            previous_len = len(self._text)
            self._text += fragment
            self._scan(previous_len)
        return self.current()

    def _scan(self, previous_len: int) -> None:
        text = self._text
        if not self._open_seen:
            start = max(0, previous_len - len(self.open_marker) + 1)
            self._open_seen = text.find(self.open_marker, start) >= 0
        if self._finished:
            return
        pos = max(self._resume, previous_len - self._overlap)
        while True:
            match = self._pattern.search(text, pos)
            if match is None:
                return
            self._spans.append(match.span())
            pos = self._resume = match.end()
            LOGGER.debug("Reasoning sentinel %s at offset %d", match.group(), match.start())
            if match.group() == self.close_marker and len(self._spans) > 1:
                self._finished = True
                return

    def current(self) -> AccumulatedText:
        if not self._open_seen:
            return AccumulatedText("", self._text)
        return _segments(self._text, self._spans)


class DeltaAccumulator:
    """Per-response accumulation state.

    Fragments are concatenated strictly in arrival order; nothing is
    reordered or deduplicated. Discard the instance when the response ends.
    """

    def __init__(self, splitter: Optional[SentinelReasoningSplitter] = None):
        self._splitter = splitter or SentinelReasoningSplitter()
        self._last = AccumulatedText("", "")

    @property
    def full_text(self) -> str:
        return self._splitter.full_text

    @property
    def reasoning_open(self) -> bool:
        return self._splitter.reasoning_open

    @property
    def reasoning_text(self) -> str:
        return self._last.reasoning

    @property
    def answer_text(self) -> str:
        return self._last.answer

    def append(self, fragment: str) -> AccumulatedText:
        """Append one delta and return the updated ``(reasoning, answer)`` pair."""
        self._last = self._splitter.feed(fragment or "")
        return self._last
