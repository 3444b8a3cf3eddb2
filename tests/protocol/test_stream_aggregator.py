import asyncio

import pytest

from interactions_client.core.errors import (
    ApiReportedError,
    ContentDecodeError,
    InteractionTimeoutError,
    MalformedResponseError,
    StreamTruncatedError,
)
from interactions_client.core.types import AggregatorState, InteractionStatus
from interactions_client.protocol.aggregator import StreamAggregator, merge_fragment
from interactions_client.protocol.content import FunctionCall, Text, Thought, ThoughtSignature, Unknown
from interactions_client.protocol.parsers.events import (
    ContentDelta,
    ContentStart,
    ContentStop,
    StatusUpdate,
    StreamError,
    TurnComplete,
    Unrecognized,
    decode_events,
)
from interactions_client.protocol.parsers.sse import read_records
from interactions_client.protocol.transcript import Transcript
from tests.fakes import aiter_list, chunks_of


def done(interaction_id="int_1", status=InteractionStatus.COMPLETED, raw=None, items=()):
    return TurnComplete(Transcript(items=tuple(items), interaction_id=interaction_id, status=status, raw_status=raw or status.value))


def aggregator(events, **kwargs):
    kwargs.setdefault("status_timeout", 5.0)
    return StreamAggregator(aiter_list(events), **kwargs)


class TestMerge:
    def test_text_fragments_concatenate(self):
        assert merge_fragment(Text("Hel"), Text("lo")) == Text("Hello")

    def test_thought_signature_attaches_to_thought(self):
        assert merge_fragment(Thought("plan"), ThoughtSignature("sig")) == Thought("plan", "sig")

    def test_different_kinds_do_not_merge(self):
        assert merge_fragment(Text("a"), Thought("b")) is None
        assert merge_fragment(Text("a"), ThoughtSignature("s")) is None

    def test_function_calls_with_different_ids_stay_separate(self):
        assert merge_fragment(FunctionCall("f", {}, "c1"), FunctionCall("f", {}, "c2")) is None

    def test_function_call_fragment_in_slot_later_fields_win(self):
        merged = merge_fragment(FunctionCall("f", None, "c1"), FunctionCall("f", {"x": 1}, None, "sig"), explicit_slot=True)
        assert merged == FunctionCall("f", {"x": 1}, "c1", "sig")


@pytest.mark.asyncio
async def test_hello_scenario_from_wire_bytes():
    stream = (
        b'event: content.delta\ndata:{"type":"text","text":"Hel"}\n\n'
        b'event: content.delta\ndata:{"type":"text","text":"lo"}\n\n'
        b'event: interaction.complete\ndata:{"status":"completed","id":"int_1"}\n\n'
    )
    agg = StreamAggregator(decode_events(read_records(chunks_of(stream, 5))), status_timeout=1.0)
    live = [item async for item in agg.deltas()]
    assert live == [Text("Hel"), Text("lo")]
    assert agg.state is AggregatorState.COMPLETED
    assert agg.transcript.items == (Text("Hello"),)
    assert agg.transcript.interaction_id == "int_1"
    assert agg.transcript.status is InteractionStatus.COMPLETED


@pytest.mark.asyncio
async def test_malformed_known_content_does_not_abort_stream():
    stream = (
        b'event: content.delta\ndata:{"type":"function_call","id":"c1","arguments":{"x":1}}\n\n'
        b'event: content.delta\ndata:{"type":"text","text":"still here"}\n\n'
        b'event: interaction.complete\ndata:{"status":"completed","id":"int_1"}\n\n'
    )
    agg = StreamAggregator(decode_events(read_records(chunks_of(stream, 7))), status_timeout=1.0)
    t = await agg.collect()
    assert agg.state is AggregatorState.COMPLETED
    assert t.items == (
        Unknown(tag="function_call", data={"type": "function_call", "id": "c1", "arguments": {"x": 1}}),
        Text("still here"),
    )
    assert t.function_calls() == []


@pytest.mark.asyncio
async def test_slots_merge_by_index_not_arrival():
    events = [
        ContentDelta(Thought("think "), index=0),
        ContentDelta(Text("ans"), index=1),
        ContentDelta(Thought("more"), index=0),
        ContentDelta(ThoughtSignature("sig"), index=0),
        ContentDelta(Text("wer"), index=1),
        done(),
    ]
    t = await aggregator(events).collect()
    assert t.items == (Thought("think more", "sig"), Text("answer"))
    assert t.thought_signatures() == ["sig"]


@pytest.mark.asyncio
async def test_content_stop_closes_slot():
    events = [
        ContentStart(0, Text()),
        ContentDelta(Text("a"), index=0),
        ContentStop(0),
        ContentDelta(Text("b"), index=0),
        done(),
    ]
    t = await aggregator(events).collect()
    assert t.items == (Text("a"), Text("b"))


@pytest.mark.asyncio
async def test_parallel_function_calls_are_separate_items():
    events = [
        ContentDelta(FunctionCall("f", {"n": 1}, "c1")),
        ContentDelta(FunctionCall("f", {"n": 2}, "c2")),
        done(status=InteractionStatus.REQUIRES_ACTION),
    ]
    t = await aggregator(events).collect()
    assert [c.id for c in t.function_calls()] == ["c1", "c2"]


@pytest.mark.asyncio
async def test_completion_outputs_used_when_nothing_streamed():
    t = await aggregator([done(items=[Text("whole")])]).collect()
    assert t.items == (Text("whole"),)


@pytest.mark.asyncio
async def test_unrecognized_and_status_events_are_ignored():
    events = [
        Unrecognized("mystery", "{}"),
        StatusUpdate("int_1", InteractionStatus.IN_PROGRESS, "in_progress"),
        ContentDelta(Text("x")),
        done(),
    ]
    t = await aggregator(events).collect()
    assert t.items == (Text("x"),)


@pytest.mark.asyncio
async def test_failure_status_finalizes_as_failed():
    agg = aggregator([ContentDelta(Text("partial")), done(status=InteractionStatus.FAILED)])
    t = await agg.collect()
    assert agg.state is AggregatorState.FAILED
    assert t.status is InteractionStatus.FAILED


@pytest.mark.asyncio
async def test_error_event_raises_api_error():
    agg = aggregator([ContentDelta(Text("x")), StreamError("overloaded", "UNAVAILABLE")])
    with pytest.raises(ApiReportedError) as exc:
        await agg.collect()
    assert exc.value.message == "overloaded"
    assert exc.value.code == "UNAVAILABLE"
    assert agg.state is AggregatorState.FAILED


@pytest.mark.asyncio
async def test_stream_end_without_completion_is_truncation():
    agg = aggregator([ContentDelta(Text("x"))])
    with pytest.raises(StreamTruncatedError):
        await agg.collect()
    assert agg.state is AggregatorState.FAILED
    with pytest.raises(RuntimeError):
        agg.transcript


@pytest.mark.asyncio
async def test_unknown_future_state_polls_until_terminal():
    polls = []

    async def poller(interaction_id):
        polls.append(interaction_id)
        if len(polls) < 3:
            return {"id": interaction_id, "status": "unknown_future_state"}
        return {"id": interaction_id, "status": "completed", "outputs": [{"type": "text", "text": "late"}]}

    events = [done(status=InteractionStatus.UNRECOGNIZED, raw="unknown_future_state")]
    agg = aggregator(events, status_timeout=2.0, poller=poller, poll_interval=0.01)
    t = await agg.collect()
    assert polls == ["int_1", "int_1", "int_1"]
    assert t.status is InteractionStatus.COMPLETED
    assert t.items == (Text("late"),)


@pytest.mark.asyncio
async def test_strict_mode_applies_to_polled_outputs():
    async def poller(interaction_id):
        return {"id": interaction_id, "status": "completed", "outputs": [{"type": "hologram"}]}

    events = [done(status=InteractionStatus.UNRECOGNIZED, raw="unknown_future_state")]
    agg = aggregator(events, status_timeout=1.0, poller=poller, poll_interval=0.01, strict=True)
    with pytest.raises(ContentDecodeError):
        await agg.collect()
    assert agg.state is AggregatorState.FAILED

    lenient = aggregator(list(events), status_timeout=1.0, poller=poller, poll_interval=0.01)
    t = await lenient.collect()
    assert t.items == (Unknown(tag="hologram", data={"type": "hologram"}),)


@pytest.mark.asyncio
async def test_unknown_future_state_times_out():
    async def poller(interaction_id):
        return {"id": interaction_id, "status": "unknown_future_state"}

    events = [done(status=InteractionStatus.UNRECOGNIZED, raw="unknown_future_state")]
    agg = aggregator(events, status_timeout=0.05, poller=poller, poll_interval=0.01)
    with pytest.raises(TimeoutError) as exc:
        await agg.collect()
    assert isinstance(exc.value, InteractionTimeoutError)
    assert exc.value.last_status == "unknown_future_state"
    assert agg.state is AggregatorState.FAILED


@pytest.mark.asyncio
async def test_transient_status_then_terminal_on_stream():
    events = [
        done(status=InteractionStatus.IN_PROGRESS, raw="in_progress"),
        ContentDelta(Text("done")),
        done(),
    ]
    t = await aggregator(events, status_timeout=1.0).collect()
    assert t.status is InteractionStatus.COMPLETED
    assert t.text() == "done"


@pytest.mark.asyncio
async def test_transient_status_times_out_on_slow_stream():
    async def slow():
        yield done(status=InteractionStatus.UNRECOGNIZED, raw="thinking_harder")
        await asyncio.sleep(10)
        yield done()

    agg = StreamAggregator(slow(), status_timeout=0.05)
    with pytest.raises(InteractionTimeoutError):
        await agg.collect()


@pytest.mark.asyncio
async def test_transient_status_without_poller_is_truncation():
    events = [done(status=InteractionStatus.UNRECOGNIZED, raw="unknown_future_state")]
    with pytest.raises(StreamTruncatedError):
        await aggregator(events).collect()


@pytest.mark.asyncio
async def test_transient_status_without_id_cannot_poll():
    async def poller(interaction_id):
        raise AssertionError("should not poll")

    events = [done(interaction_id=None, status=InteractionStatus.UNRECOGNIZED, raw="unknown_future_state")]
    with pytest.raises(MalformedResponseError):
        await aggregator(events, poller=poller).collect()


@pytest.mark.asyncio
async def test_closing_deltas_closes_upstream_and_leaves_no_transcript():
    closed = asyncio.Event()

    async def endless():
        try:
            while True:
                yield ContentDelta(Text("x"))
        finally:
            closed.set()

    agg = StreamAggregator(endless(), status_timeout=1.0)
    stream = agg.deltas()
    assert await stream.__anext__() == Text("x")
    await stream.aclose()
    assert closed.is_set()
    assert agg.state is AggregatorState.FAILED
    with pytest.raises(RuntimeError):
        agg.transcript


def test_status_timeout_is_required():
    with pytest.raises(TypeError):
        StreamAggregator(aiter_list([]))


@pytest.mark.asyncio
async def test_stream_can_only_be_consumed_once():
    agg = aggregator([done()])
    await agg.collect()
    with pytest.raises(RuntimeError):
        await agg.collect()
