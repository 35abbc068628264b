"""
Unit Tests for the Dispatch Pipeline

Test coverage for:
- Acknowledgement independent of handler outcome
- Failure boundary: each error kind and what the user sees
- Delivery policy: one fallback notice, then drop
- Concurrency: independent tasks, shutdown and drain
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from stagebot import views
from stagebot.errors import DecodeError, RemoteCallFailure
from stagebot.events import Message
from stagebot.matcher import CommandMatcher
from stagebot.pipeline import DispatchPipeline, Outcome
from stagebot.registry import CommandRegistry, track_id_arg
from stagebot.router import InteractionRouter
from stagebot.workflow import ReleaseStep, WorkflowKind

from .support import TEST_CHANNEL, chat, press


@pytest.fixture
def handlers():
    return {
        "echo": AsyncMock(return_value=None),
        "enable": AsyncMock(return_value=None),
        "confirm": AsyncMock(return_value=None),
        "cancel": AsyncMock(return_value=None),
    }


@pytest.fixture
def pipeline(transport, codec, handlers):
    registry = CommandRegistry()
    registry.register("echo", "Echo", handlers["echo"])
    registry.register("track automate enable", "Enable", handlers["enable"],
                      args=(track_id_arg(),))
    registry.freeze()

    router = InteractionRouter()
    router.register("rel_ok", handlers["confirm"], workflow=WorkflowKind.RELEASE,
                    step=ReleaseStep.AWAITING_CONFIRMATION)
    router.register("cancel", handlers["cancel"])
    router.freeze()
    return DispatchPipeline(transport, CommandMatcher(registry), router, codec)


# -----------------------------------------------------------------------------
# Routing Tests
# -----------------------------------------------------------------------------
class TestRouting:
    """Tests for resolving events to handlers."""

    @pytest.mark.asyncio
    async def test_no_match_is_silent(self, pipeline, transport, handlers):
        outcome = await pipeline.dispatch(chat("good morning everyone"))
        assert outcome == Outcome.NO_MATCH
        assert transport.acknowledged == ["101"]
        assert transport.outbound == 0

    @pytest.mark.asyncio
    async def test_command_gets_validated_args(self, pipeline, handlers):
        outcome = await pipeline.dispatch(chat("@stagebot track automate enable 7"))
        assert outcome == Outcome.OK
        ctx = handlers["enable"].await_args.args[0]
        assert ctx.args == (7,)
        assert ctx.correlation_id == "101"

    @pytest.mark.asyncio
    async def test_invalid_arguments_never_reach_handler(self, pipeline, transport, handlers):
        outcome = await pipeline.dispatch(chat("@stagebot track automate enable"))
        assert outcome == Outcome.INVALID_ARGUMENTS
        handlers["enable"].assert_not_awaited()
        assert len(transport.thread_posts) == 1
        channel, thread_ts, message = transport.thread_posts[0]
        assert (channel, thread_ts) == (TEST_CHANNEL, "101")
        assert "<trackId>" in message.text

    @pytest.mark.asyncio
    async def test_unknown_action_is_acknowledged_and_dropped(self, pipeline, transport):
        outcome = await pipeline.dispatch(press("bogus", "release.1:3:foo:minor"))
        assert outcome == Outcome.UNROUTED
        assert transport.acknowledged == ["202"]
        assert transport.outbound == 0

    @pytest.mark.asyncio
    async def test_token_decoded_before_handler(self, pipeline, handlers):
        outcome = await pipeline.dispatch(press("rel_ok", "release.1:3:foo:minor"))
        assert outcome == Outcome.OK
        ctx = handlers["confirm"].await_args.args[0]
        assert ctx.token.as_dict() == {"repository": "foo", "level": "minor"}

    @pytest.mark.asyncio
    async def test_route_without_workflow_skips_decoding(self, pipeline, handlers):
        outcome = await pipeline.dispatch(press("cancel", ""))
        assert outcome == Outcome.OK
        assert handlers["cancel"].await_args.args[0].token is None

    @pytest.mark.asyncio
    async def test_handler_outcome_is_returned(self, pipeline, handlers):
        handlers["confirm"].return_value = Outcome.DUPLICATE
        outcome = await pipeline.dispatch(press("rel_ok", "release.1:3:foo:minor"))
        assert outcome == Outcome.DUPLICATE


# -----------------------------------------------------------------------------
# Failure Boundary Tests
# -----------------------------------------------------------------------------
class TestFailureBoundary:
    """Tests for mapping handler errors to user-visible replies."""

    @pytest.mark.asyncio
    async def test_foreign_token_is_terminal(self, pipeline, transport, handlers):
        outcome = await pipeline.dispatch(press("rel_ok", "broadcast.1:1:7"))
        assert outcome == Outcome.DECODE_ERROR
        handlers["confirm"].assert_not_awaited()
        assert len(transport.updates) == 1
        _, message_ts, message = transport.updates[0]
        assert message_ts == "202"
        assert message == views.invalid_interaction()
        assert not message.is_interactive

    @pytest.mark.asyncio
    async def test_wrong_step_is_rejected(self, pipeline, transport, handlers):
        outcome = await pipeline.dispatch(press("rel_ok", "release.1:2:foo"))
        assert outcome == Outcome.DECODE_ERROR
        handlers["confirm"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_decode_error_raised_by_handler(self, pipeline, transport, handlers):
        handlers["cancel"].side_effect = DecodeError("unknown target")
        outcome = await pipeline.dispatch(press("cancel"))
        assert outcome == Outcome.DECODE_ERROR
        assert transport.updates[0][2] == views.invalid_interaction()

    @pytest.mark.asyncio
    async def test_remote_failure_on_command_replies_generic(self, pipeline, transport, handlers):
        handlers["echo"].side_effect = RemoteCallFailure("ListTracks", "HTTP 500: secret detail")
        outcome = await pipeline.dispatch(chat("echo"))
        assert outcome == Outcome.REMOTE_FAILURE
        assert len(transport.thread_posts) == 1
        text = transport.thread_posts[0][2].text
        assert "Something went wrong" in text
        assert "secret detail" not in text

    @pytest.mark.asyncio
    async def test_remote_failure_on_interaction_removes_buttons(self, pipeline, transport, handlers):
        handlers["confirm"].side_effect = RemoteCallFailure("CreateRef", "timeout")
        outcome = await pipeline.dispatch(press("rel_ok", "release.1:3:foo:minor"))
        assert outcome == Outcome.REMOTE_FAILURE
        assert len(transport.updates) == 1
        assert not transport.updates[0][2].is_interactive

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, pipeline, transport, handlers):
        handlers["echo"].side_effect = KeyError("boom")
        outcome = await pipeline.dispatch(chat("echo"))
        assert outcome == Outcome.HANDLER_ERROR
        assert "boom" not in transport.thread_posts[0][2].text

    @pytest.mark.asyncio
    async def test_acknowledge_failure_does_not_stop_dispatch(self, pipeline, transport, handlers):
        transport.failures["acknowledge"] = 1
        outcome = await pipeline.dispatch(chat("echo"))
        assert outcome == Outcome.OK
        handlers["echo"].assert_awaited_once()


# -----------------------------------------------------------------------------
# Delivery Policy Tests
# -----------------------------------------------------------------------------
class TestDeliveryPolicy:
    """A failed reply gets exactly one generic follow-up, then is dropped."""

    @pytest.fixture
    def replying(self, handlers):
        async def reply(ctx):
            await ctx.post(Message("hello"))
        handlers["echo"].side_effect = reply

    @pytest.mark.asyncio
    async def test_single_fallback_notice(self, pipeline, transport, replying):
        transport.failures["post_message"] = 1
        outcome = await pipeline.dispatch(chat("echo"))
        assert outcome == Outcome.DELIVERY_FAILURE
        assert transport.posts == []
        assert len(transport.thread_posts) == 1
        assert "Something went wrong" in transport.thread_posts[0][2].text

    @pytest.mark.asyncio
    async def test_fallback_failure_is_dropped(self, pipeline, transport, replying):
        transport.failures["post_message"] = 1
        transport.failures["post_message_to_thread"] = 5
        outcome = await pipeline.dispatch(chat("echo"))
        assert outcome == Outcome.DELIVERY_FAILURE
        # one fallback attempt only
        assert transport.failures["post_message_to_thread"] == 4
        assert transport.outbound == 0


# -----------------------------------------------------------------------------
# Concurrency Tests
# -----------------------------------------------------------------------------
class TestConcurrency:
    """Tests for per-event tasks and shutdown."""

    @pytest.mark.asyncio
    async def test_slow_event_does_not_block_others(self, pipeline, transport, handlers):
        release = asyncio.Event()

        async def slow(ctx):
            await release.wait()
            await ctx.reply(Message("slow done"))

        async def fast(ctx):
            await ctx.reply(Message("fast done"))

        handlers["echo"].side_effect = slow
        handlers["cancel"].side_effect = fast

        slow_task = pipeline.submit(chat("echo", ts="1"))
        fast_task = pipeline.submit(press("cancel", ts="2"))
        assert await fast_task == Outcome.OK
        assert not slow_task.done()
        assert [m.text for _, _, m in transport.thread_posts] == ["fast done"]

        release.set()
        assert await slow_task == Outcome.OK
        assert pipeline.in_flight == 0

    @pytest.mark.asyncio
    async def test_failing_event_does_not_affect_neighbour(self, pipeline, handlers):
        handlers["echo"].side_effect = RuntimeError("boom")
        failing = pipeline.submit(chat("echo", ts="1"))
        healthy = pipeline.submit(chat("track automate enable 3", ts="2"))
        outcomes = await asyncio.gather(failing, healthy)
        assert outcomes == [Outcome.HANDLER_ERROR, Outcome.OK]

    @pytest.mark.asyncio
    async def test_shutdown_drains_and_rejects_new_events(self, pipeline, handlers):
        started = asyncio.Event()
        finished = []

        async def slow(ctx):
            started.set()
            await asyncio.sleep(0.05)
            finished.append(ctx.correlation_id)

        handlers["echo"].side_effect = slow
        pipeline.submit(chat("echo", ts="1"))
        await started.wait()

        await pipeline.shutdown(timeout=1.0)
        assert finished == ["1"]
        assert pipeline.closing
        assert pipeline.submit(chat("echo", ts="2")) is None
        assert pipeline.in_flight == 0
