import asyncio

import pytest

from candid.engine.speech_segmenter import SpeechSegmenter


@pytest.fixture
def utterances():
    return []


async def test_fragments_within_pause_form_one_utterance(utterances):
    """'I would', then 'use a hash map' before the pause runs out, is one utterance"""
    segmenter = SpeechSegmenter(200, utterances.append)

    segmenter.feed("I would")
    await asyncio.sleep(0.08)
    assert utterances == []
    segmenter.feed("use a hash map")
    await asyncio.sleep(0.1)
    assert utterances == []

    await asyncio.sleep(0.2)
    assert utterances == ["I would use a hash map"]
    assert segmenter.buffer == ""
    assert not segmenter.pending


async def test_many_fast_fragments_fire_exactly_once(utterances):
    segmenter = SpeechSegmenter(150, utterances.append)
    words = ["one", "two", "three", "four", "five"]

    for word in words:
        segmenter.feed(word)
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.3)

    assert utterances == ["one two three four five"]


async def test_separate_pauses_give_separate_utterances(utterances):
    segmenter = SpeechSegmenter(30, utterances.append)

    segmenter.feed("first")
    await asyncio.sleep(0.1)
    segmenter.feed("second")
    await asyncio.sleep(0.1)

    assert utterances == ["first", "second"]


def test_zero_pause_flushes_every_fragment(utterances):
    segmenter = SpeechSegmenter(0, utterances.append)

    segmenter.feed("chunk one")
    segmenter.feed("chunk two")

    assert utterances == ["chunk one", "chunk two"]
    assert not segmenter.pending


async def test_blank_fragments_are_ignored(utterances):
    segmenter = SpeechSegmenter(20, utterances.append)

    segmenter.feed("   ")
    segmenter.feed("")

    assert not segmenter.pending
    assert segmenter.flush() is None
    assert utterances == []


async def test_touch_restarts_running_countdown(utterances):
    segmenter = SpeechSegmenter(150, utterances.append)

    segmenter.feed("let me think")
    await asyncio.sleep(0.1)
    segmenter.touch()
    await asyncio.sleep(0.1)
    assert utterances == []

    await asyncio.sleep(0.12)
    assert utterances == ["let me think"]


async def test_touch_without_buffered_speech_does_nothing(utterances):
    segmenter = SpeechSegmenter(20, utterances.append)

    segmenter.touch()

    assert not segmenter.pending


async def test_cancel_is_idempotent(utterances):
    segmenter = SpeechSegmenter(20, utterances.append)
    segmenter.feed("hello there")

    segmenter.cancel()
    segmenter.cancel()
    await asyncio.sleep(0.05)

    assert utterances == []
    assert segmenter.buffer == "hello there"


async def test_closed_segmenter_never_fires(utterances):
    segmenter = SpeechSegmenter(20, utterances.append)
    segmenter.feed("late words")

    segmenter.close()
    segmenter.feed("more words")
    await asyncio.sleep(0.05)

    assert utterances == []
    assert segmenter.buffer == ""


def test_negative_pause_rejected():
    with pytest.raises(ValueError):
        SpeechSegmenter(-1, lambda text: None)
