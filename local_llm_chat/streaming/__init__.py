"""Streaming response processing subsystem.

This package contains the incremental ingestion pipeline:
- sse_parser: Byte chunks -> lines -> typed frames
- reasoning_tracker: Delta accumulation and [THINK] sentinel splitting
- projector: (reasoning, answer) pairs -> conversation message list

Data flows strictly downward; none of these components hold references to
application state across send operations.
"""

from .sse_parser import (
    ChunkReassembler,
    DeltaFrame,
    DoneFrame,
    ErrorFrame,
    EventFrameDecoder,
    SSEParser,
)
from .reasoning_tracker import (
    AccumulatedText,
    DeltaAccumulator,
    SentinelReasoningSplitter,
    split_reasoning,
)
from .projector import ConversationProjector

__all__ = [
    "ChunkReassembler",
    "DeltaFrame",
    "DoneFrame",
    "ErrorFrame",
    "EventFrameDecoder",
    "SSEParser",
    "AccumulatedText",
    "DeltaAccumulator",
    "SentinelReasoningSplitter",
    "split_reasoning",
    "ConversationProjector",
]
