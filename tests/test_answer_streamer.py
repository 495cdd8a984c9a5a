"""Tests for consuming the streaming answer."""

import asyncio
import json

import httpx
import pytest

from services.coach_pipeline.AnswerStreamer import AnswerStreamer
from shared.clients.llm.gemini.LLMClientGemini import LLMClientGemini
from shared.exceptions import InvalidArgumentError, StreamAbortedError, UpstreamUnavailableError
from shared.models.search import StreamedAnswer, StreamEvent, StreamEventKind


class FakeStreamingClient:
    """Replays a fixed list of events and records whether the stream was closed."""

    def __init__(self, events, delay: float = 0.0):
        self.events = events
        self.delay = delay
        self.closed = False
        self.prompts = []

    async def do_stream_generate(self, prompt, model=None):
        self.prompts.append(prompt)
        try:
            for event in self.events:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield event
        finally:
            self.closed = True


def _token(text):
    return StreamEvent(kind=StreamEventKind.TOKEN, text=text)


DONE = StreamEvent(kind=StreamEventKind.DONE)


async def _collect(generator):
    return [update async for update in generator]


@pytest.mark.asyncio
async def test_tokens_accumulate_until_done(helper_config):
    client = FakeStreamingClient([_token("Ga naar "), _token(""), _token("Opdrachten."), DONE, _token("ignored")])
    answer = StreamedAnswer()

    updates = await _collect(AnswerStreamer(helper_config, client).stream_answer("Vraag?", answer))

    assert [u.delta for u in updates] == ["Ga naar ", "Opdrachten.", ""]
    assert [u.text for u in updates] == ["Ga naar ", "Ga naar Opdrachten.", "Ga naar Opdrachten."]
    assert updates[-1].complete
    assert answer.complete
    assert answer.text == "Ga naar Opdrachten."
    assert client.closed


@pytest.mark.asyncio
async def test_error_event_aborts_with_partial_answer(helper_config):
    client = FakeStreamingClient([_token("Half"), StreamEvent(kind=StreamEventKind.ERROR, message="quota exceeded")])
    answer = StreamedAnswer()

    with pytest.raises(StreamAbortedError, match="quota exceeded"):
        await _collect(AnswerStreamer(helper_config, client).stream_answer("Vraag?", answer))

    assert answer.text == "Half"
    assert not answer.complete
    assert client.closed


@pytest.mark.asyncio
async def test_stream_ending_without_done_is_aborted(helper_config):
    client = FakeStreamingClient([_token("Half")])

    with pytest.raises(StreamAbortedError):
        await _collect(AnswerStreamer(helper_config, client).stream_answer("Vraag?"))


@pytest.mark.asyncio
async def test_closing_the_consumer_closes_the_stream(helper_config):
    client = FakeStreamingClient([_token("een "), _token("twee "), _token("drie"), DONE])
    answer = StreamedAnswer()
    stream = AnswerStreamer(helper_config, client).stream_answer("Vraag?", answer)

    first = await stream.__anext__()
    await stream.aclose()

    assert first.text == "een "
    assert answer.text == "een "
    assert not answer.complete
    assert client.closed


@pytest.mark.asyncio
async def test_cancelling_the_task_closes_the_stream(helper_config):
    client = FakeStreamingClient([_token("a")] * 100 + [DONE], delay=0.01)
    received = []

    async def _consume():
        async for update in AnswerStreamer(helper_config, client).stream_answer("Vraag?"):
            received.append(update)

    task = asyncio.create_task(_consume())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert 0 < len(received) < 100
    assert client.closed


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected(helper_config):
    client = FakeStreamingClient([DONE])

    with pytest.raises(InvalidArgumentError):
        await _collect(AnswerStreamer(helper_config, client).stream_answer("   "))

    assert client.prompts == []


async def _gemini_client(helper_config, handler) -> LLMClientGemini:
    client = LLMClientGemini(helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_connection_lost_mid_answer_is_aborted(helper_config):
    async def _broken_body():
        chunk = {"candidates": [{"content": {"role": "model", "parts": [{"text": "Hallo"}]}}]}
        yield f"data: {json.dumps(chunk)}\r\n\r\n".encode("utf-8")
        raise httpx.ReadError("connection reset")

    client = await _gemini_client(helper_config, lambda request: httpx.Response(200, content=_broken_body()))
    answer = StreamedAnswer()
    deltas = []

    with pytest.raises(StreamAbortedError) as exc_info:
        async for update in AnswerStreamer(helper_config, client).stream_answer("Vraag?", answer):
            deltas.append(update.delta)

    assert exc_info.value.kind == "stream_aborted"
    assert deltas == ["Hallo"]
    assert not answer.complete
    await client.close()


@pytest.mark.asyncio
async def test_connection_lost_before_first_token_is_upstream_unavailable(helper_config):
    async def _broken_body():
        raise httpx.ReadError("connection reset")
        yield b""

    client = await _gemini_client(helper_config, lambda request: httpx.Response(200, content=_broken_body()))

    with pytest.raises(UpstreamUnavailableError):
        await _collect(AnswerStreamer(helper_config, client).stream_answer("Vraag?"))
    await client.close()
