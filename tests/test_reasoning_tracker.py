"""Tests for delta accumulation and [THINK] sentinel splitting."""

from __future__ import annotations

import pytest

from local_llm_chat.streaming.reasoning_tracker import (
    AccumulatedText,
    DeltaAccumulator,
    SentinelReasoningSplitter,
    split_reasoning,
)


def _feed(fragments: list[str]) -> list[AccumulatedText]:
    accumulator = DeltaAccumulator()
    return [accumulator.append(fragment) for fragment in fragments]


# -----------------------------------------------------------------------------
# Plain answers
# -----------------------------------------------------------------------------

def test_plain_deltas_concatenate_in_order() -> None:
    fragments = ["Hel", "lo", " ", "wor", "ld", "!"]
    steps = _feed(fragments)

    for idx, step in enumerate(steps, start=1):
        assert step == AccumulatedText("", "".join(fragments[:idx]))


def test_repeated_fragments_are_not_deduplicated() -> None:
    assert _feed(["ha", "ha", "ha"])[-1] == AccumulatedText("", "hahaha")


def test_empty_fragments_change_nothing() -> None:
    accumulator = DeltaAccumulator()
    accumulator.append("abc")
    assert accumulator.append("") == AccumulatedText("", "abc")
    assert accumulator.full_text == "abc"


# -----------------------------------------------------------------------------
# Reasoning sections
# -----------------------------------------------------------------------------

def test_open_sentinel_only_puts_everything_after_it_in_reasoning() -> None:
    assert split_reasoning("[THINK]still thinking") == AccumulatedText("still thinking", "")


def test_both_sentinels_split_reasoning_and_answer() -> None:
    assert split_reasoning("[THINK]because[/THINK]42") == AccumulatedText("because", "42")


def test_scenario_deltas_split_into_reasoning_and_answer() -> None:
    steps = _feed(["[THINK]", "pondering", "[/THINK]", "42"])

    assert steps[0] == AccumulatedText("", "")
    assert steps[1] == AccumulatedText("pondering", "")
    assert steps[2] == AccumulatedText("pondering", "")
    assert steps[3] == AccumulatedText("pondering", "42")


def test_sentinels_split_across_deltas() -> None:
    accumulator = DeltaAccumulator()
    for fragment in ["[TH", "IN", "K]dee", "p[/", "THI", "NK]ans", "wer"]:
        accumulator.append(fragment)

    assert accumulator.reasoning_text == "deep"
    assert accumulator.answer_text == "answer"
    assert accumulator.reasoning_open is False


def test_reasoning_open_flag_tracks_section() -> None:
    accumulator = DeltaAccumulator()
    accumulator.append("[THINK]x")
    assert accumulator.reasoning_open is True
    accumulator.append("[/THINK]")
    assert accumulator.reasoning_open is False


def test_text_before_open_sentinel_is_hidden_once_reasoning_opens() -> None:
    steps = _feed(["Sure. ", "[THINK]", "hmm"])

    assert steps[0] == AccumulatedText("", "Sure. ")
    assert steps[2] == AccumulatedText("hmm", "")


def test_close_without_any_open_is_plain_answer() -> None:
    assert split_reasoning("a[/THINK]b") == AccumulatedText("", "a[/THINK]b")


def test_close_before_open_counts_as_first_cut() -> None:
    steps = _feed(["x[/THINK]y", "[THINK]z"])

    assert steps[0] == AccumulatedText("", "x[/THINK]y")
    assert steps[1] == AccumulatedText("y", "z")


def test_sentinels_after_close_are_literal_answer_text() -> None:
    text = "[THINK]r[/THINK]a[THINK]b[/THINK]c"
    assert split_reasoning(text) == AccumulatedText("r", "a[THINK]b[/THINK]c")


def test_nested_open_ends_reasoning_segment() -> None:
    steps = _feed(["[THINK]", "a", "[THINK]", "b", "[/THINK]", "c"])

    assert steps[1] == AccumulatedText("a", "")
    assert steps[3] == AccumulatedText("a", "b")
    assert steps[-1] == AccumulatedText("a", "b")


def test_nested_open_without_close_keeps_second_segment_as_answer() -> None:
    assert split_reasoning("[THINK]a[THINK]b[THINK]c") == AccumulatedText("a", "b")


# -----------------------------------------------------------------------------
# Incremental scanning equals full re-scan
# -----------------------------------------------------------------------------

TEXTS = [
    "plain answer without markers",
    "[THINK]reason[/THINK]answer",
    "pre[THINK]reason[/THINK]answer",
    "[/THINK]stray close[THINK]then open[/THINK]done",
    "[THINK]a[THINK]b[/THINK]c[/THINK]d[THINK]e",
    "[THINK][/THINK]",
    "[[THINK]][/THINK]]",
    "[THINK]unterminated reasoning [/THIN",
]


@pytest.mark.parametrize("text", TEXTS)
@pytest.mark.parametrize("size", [1, 2, 3, 4, 8])
def test_incremental_split_matches_full_rescan(text: str, size: int) -> None:
    splitter = SentinelReasoningSplitter()
    for start in range(0, len(text), size):
        step = splitter.feed(text[start:start + size])
        assert step == split_reasoning(splitter.full_text)
    assert splitter.current() == split_reasoning(text)


def test_custom_sentinels_can_be_swapped_in() -> None:
    splitter = SentinelReasoningSplitter("<think>", "</think>")
    accumulator = DeltaAccumulator(splitter)
    accumulator.append("<think>plan</th")
    result = accumulator.append("ink>done")

    assert result == AccumulatedText("plan", "done")


def test_empty_sentinels_are_rejected() -> None:
    with pytest.raises(ValueError):
        SentinelReasoningSplitter("", "[/THINK]")
