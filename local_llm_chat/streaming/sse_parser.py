"""Server-Sent Events (SSE) parsing.

This module turns the raw byte stream of a chat completion into frames:
- ChunkReassembler: bytes -> complete text lines (carry buffer across reads)
- EventFrameDecoder: one line -> DeltaFrame / ErrorFrame / DoneFrame / nothing
- SSEParser: drives both over an async chunk source, stopping at terminal frames

Malformed data frames are logged and skipped; they never abort the stream.
The space after ``data:`` is optional, as in the SSE wire format, so both
``data: {...}`` and ``data:{...}`` are accepted. An ``error`` field is checked
before the chunk schema, so an error envelope is never dropped for carrying an
odd ``choices`` shape.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterable, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..core.errors import _error_envelope_from_payload

LOGGER = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"
COMMENT_PREFIX = ":"


# -----------------------------------------------------------------------------
# Frames
# -----------------------------------------------------------------------------

@dataclass(slots=True)
class DeltaFrame:
    """Incremental text fragment (may be empty)."""

    text: str


@dataclass(slots=True)
class ErrorFrame:
    """In-band error payload. Terminal."""

    error: str
    details: Optional[str] = None


@dataclass(slots=True)
class DoneFrame:
    """The ``[DONE]`` sentinel. Terminal."""


Frame = Union[DeltaFrame, ErrorFrame, DoneFrame]


# -----------------------------------------------------------------------------
# Payload schema
# -----------------------------------------------------------------------------

class _Delta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: Optional[str] = None


class _Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    delta: Optional[_Delta] = None


class _ChunkPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: Optional[list[_Choice]] = None

    def delta_text(self) -> str:
        if not self.choices:
            return ""
        delta = self.choices[0].delta
        if delta is None or delta.content is None:
            return ""
        return delta.content


# -----------------------------------------------------------------------------
# Chunk Reassembler
# -----------------------------------------------------------------------------

class ChunkReassembler:
    """Split arbitrarily-bounded byte chunks into complete ``\\n``-terminated lines.

    Decoding is stateful, so a multi-byte character split across two chunks is
    decoded once both halves have arrived. The trailing fragment after the last
    newline is carried into the next ``feed`` call. Line length is unbounded.
    """

    def __init__(self, *, encoding: str = "utf-8", logger: Optional[logging.Logger] = None):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._carry = ""
        self.logger = logger or LOGGER

    @property
    def pending(self) -> str:
        """Incomplete fragment waiting for its newline."""
        return self._carry

    def feed(self, chunk: bytes) -> list[str]:
        """Decode ``chunk`` and return every line it completes, without the newline."""
        text = self._carry + self._decoder.decode(chunk)
        if "\n" not in text:
            self._carry = text
            return []
        *lines, self._carry = text.split("\n")
        return lines

    def finish(self) -> None:
        """Flush the decoder at end of stream and discard any unterminated fragment."""
        leftover = self._carry + self._decoder.decode(b"", final=True)
        self._carry = ""
        if leftover.strip():
            self.logger.debug(
                "Discarding unterminated trailing fragment (%d chars) at end of stream",
                len(leftover),
            )


# -----------------------------------------------------------------------------
# Event Frame Decoder
# -----------------------------------------------------------------------------

class EventFrameDecoder:
    """Classify one complete SSE line."""

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self.logger = logger or LOGGER
        self.skipped_frames = 0

    def decode_line(self, line: str) -> Optional[Frame]:
        """Return the frame carried by ``line`` or None when the line carries none.

        Blank lines, ``:`` comments and unknown line shapes yield None. A data
        line whose payload is not valid JSON, or is not an error envelope and
        does not match the chunk schema, is logged at WARNING and also yields None.
        """
        stripped = line.strip()
        if not stripped or stripped.startswith(COMMENT_PREFIX):
            return None
        if not stripped.startswith(DATA_PREFIX):
            return None

        data = stripped[len(DATA_PREFIX):].lstrip()
        if data == DONE_SENTINEL:
            return DoneFrame()

        try:
            raw = json.loads(data)
        except ValueError as exc:
            self.skipped_frames += 1
            self.logger.warning("Skipping malformed SSE frame: %s (payload=%.120r)", exc, data)
            return None
        if isinstance(raw, dict) and raw.get("error"):
            envelope = _error_envelope_from_payload(raw)
            return ErrorFrame(error=envelope["error"] or "Unknown error", details=envelope["details"])
        try:
            payload = _ChunkPayload.model_validate(raw)
        except ValidationError as exc:
            self.skipped_frames += 1
            self.logger.warning(
                "Skipping SSE frame with unexpected shape: %s",
                exc.errors(include_url=False),
            )
            return None

        return DeltaFrame(text=payload.delta_text())


# -----------------------------------------------------------------------------
# Driver
# -----------------------------------------------------------------------------

class SSEParser:
    """Drive the reassembler and decoder over an async source of byte chunks."""

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self.logger = logger or LOGGER

    async def iter_frames(self, chunks: AsyncIterable[bytes]) -> AsyncGenerator[Frame, None]:
        """Yield frames in arrival order.

        ``DoneFrame`` and ``ErrorFrame`` are yielded and then iteration stops,
        even when more lines are already buffered. When the source ends without
        a terminal frame, the unterminated fragment (if any) is discarded.
        """
        reassembler = ChunkReassembler(logger=self.logger)
        decoder = EventFrameDecoder(logger=self.logger)
        async for chunk in chunks:
            if not chunk:
                continue
            for line in reassembler.feed(chunk):
                frame = decoder.decode_line(line)
                if frame is None:
                    continue
                yield frame
                if not isinstance(frame, DeltaFrame):
                    return
        reassembler.finish()
        if decoder.skipped_frames:
            self.logger.debug("Stream ended after skipping %d malformed frame(s)", decoder.skipped_frames)
