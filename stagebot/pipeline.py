"""
Dispatch Pipeline

The composition point between the transport and the handlers. For every
inbound event it:

1. acknowledges the event to the transport (independent of handler success)
2. builds a request context carrying a correlation id and logger
3. resolves a handler through the command matcher or the interaction router
4. validates arguments / decodes the workflow token, then runs the handler
   inside a failure boundary
5. applies the delivery policy: a failed reply is logged, followed by exactly
   one attempt to post a generic failure notice, then dropped

Each submitted event runs in its own asyncio task, so a slow remote call on
one event never blocks the next, and a failing handler never reaches the
event-delivery loop.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Set, Tuple, Union

from . import views
from .errors import DecodeError, DeliveryFailure, InvalidArguments, RemoteCallFailure
from .events import ChatEvent, InteractionEvent, Message
from .log import RequestLogger
from .matcher import CommandMatcher
from .registry import parse_args
from .router import InteractionRouter
from .workflow import TokenCodec, WorkflowToken

logger = logging.getLogger("stagebot.pipeline")

Event = Union[ChatEvent, InteractionEvent]


class Outcome(str, Enum):
    """Result of dispatching one event."""
    OK = "ok"
    NO_MATCH = "no_match"
    UNROUTED = "unrouted"
    INVALID_ARGUMENTS = "invalid_arguments"
    DECODE_ERROR = "decode_error"
    REMOTE_FAILURE = "remote_failure"
    DELIVERY_FAILURE = "delivery_failure"
    HANDLER_ERROR = "handler_error"
    DUPLICATE = "duplicate"


class Transport(Protocol):
    """Chat transport boundary. Every method raises DeliveryFailure on error."""

    async def acknowledge(self, event: Event) -> None: ...

    async def post_message(self, channel_id: str, message: Message) -> None: ...

    async def post_message_to_thread(
        self, channel_id: str, thread_ts: str, message: Message
    ) -> None: ...

    async def update_message(
        self, channel_id: str, message_ts: str, message: Message
    ) -> None: ...


# -----------------------------------------------------------------------------
# Request Context
# -----------------------------------------------------------------------------
class RequestContext:
    """
    Everything a handler needs for one event.

    ``args`` holds validated command arguments; ``token`` holds the decoded
    workflow token for interactions bound to a workflow.
    """

    def __init__(self, event: Event, transport: Transport, log: RequestLogger):
        self.event = event
        self.transport = transport
        self.log = log
        self.args: Tuple[Any, ...] = ()
        self.token: Optional[WorkflowToken] = None
        self.delivery_failed = False

    @property
    def correlation_id(self) -> str:
        return self.event.correlation_id

    @property
    def channel_id(self) -> str:
        return self.event.channel_id

    @property
    def thread_ts(self) -> str:
        """Message that replies are threaded onto."""
        if isinstance(self.event, InteractionEvent):
            return self.event.message_ts
        return self.event.thread_ts

    @property
    def is_interaction(self) -> bool:
        return isinstance(self.event, InteractionEvent)

    async def post(self, message: Message) -> bool:
        """Post a new top-level message in the channel."""
        return await self._deliver(
            lambda: self.transport.post_message(self.channel_id, message),
            "post message",
        )

    async def reply(self, message: Message) -> bool:
        """Post into the thread of the originating message."""
        return await self._deliver(
            lambda: self.transport.post_message_to_thread(self.channel_id, self.thread_ts, message),
            "post message to thread",
        )

    async def update(self, message: Message) -> bool:
        """Replace the message the pressed button belongs to."""
        if not self.is_interaction:
            raise TypeError("update() is only available for interaction events")
        return await self._deliver(
            lambda: self.transport.update_message(self.channel_id, self.event.message_ts, message),
            "update message",
        )

    async def fail(self, message: Message) -> bool:
        """
        Terminal failure rendering.

        For interactions the original message is replaced, which removes its
        buttons, so no token of the failed step is offered again.
        """
        if self.is_interaction:
            return await self.update(message)
        return await self.reply(message)

    async def _deliver(self, send: Callable[[], Awaitable[None]], description: str) -> bool:
        try:
            await send()
            return True
        except DeliveryFailure as e:
            self.delivery_failed = True
            self.log.error(f"failed to {description}: {e}")

        try:
            await self.transport.post_message_to_thread(
                self.channel_id, self.thread_ts, views.something_is_wrong(self.correlation_id)
            )
        except DeliveryFailure as e:
            self.log.error(f"failed to post failure notice, giving up: {e}")
        return False


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------
class DispatchPipeline:
    """Routes events to handlers and isolates their failures."""

    def __init__(
        self,
        transport: Transport,
        matcher: CommandMatcher,
        router: InteractionRouter,
        codec: TokenCodec,
    ):
        self.transport = transport
        self.matcher = matcher
        self.router = router
        self.codec = codec
        self._in_flight: Set[asyncio.Task] = set()
        self._closing = False

    # -------------------------------------------------------------------------
    # Task management
    # -------------------------------------------------------------------------
    def submit(self, event: Event) -> Optional[asyncio.Task]:
        """
        Schedule an event on its own task.

        Returns None when the pipeline is closing; the event is dropped.
        """
        if self._closing:
            logger.warning(
                f"Pipeline is closing, dropping event ts={event.correlation_id}"
            )
            return None
        task = asyncio.create_task(self._run(event))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _run(self, event: Event) -> Outcome:
        try:
            return await self.dispatch(event)
        except Exception:
            logger.exception(f"Unhandled error while dispatching event ts={event.correlation_id}")
            return Outcome.HANDLER_ERROR

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def closing(self) -> bool:
        return self._closing

    def close(self) -> None:
        """Stop accepting new events."""
        self._closing = True

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight events to finish (best effort when timeout is set)."""
        pending = set(self._in_flight)
        if not pending:
            return
        logger.info(f"Waiting for {len(pending)} in-flight event(s)")
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} event(s) still running after {timeout}s")

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        self.close()
        await self.drain(timeout)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------
    async def dispatch(self, event: Event) -> Outcome:
        """Process one event to completion."""
        await self._acknowledge(event)

        if isinstance(event, InteractionEvent):
            return await self._dispatch_interaction(event)
        if isinstance(event, ChatEvent):
            return await self._dispatch_chat(event)
        raise TypeError(f"unsupported event type: {type(event).__name__}")

    async def _acknowledge(self, event: Event) -> None:
        try:
            await self.transport.acknowledge(event)
        except DeliveryFailure as e:
            logger.warning(f"Failed to acknowledge event ts={event.correlation_id}: {e}")

    def _context(self, event: Event) -> RequestContext:
        return RequestContext(event, self.transport, RequestLogger(logger, event.correlation_id))

    async def _dispatch_chat(self, event: ChatEvent) -> Outcome:
        match = self.matcher.match(event.text)
        if match is None:
            logger.debug(f"No command matched for ts={event.correlation_id}")
            return Outcome.NO_MATCH

        spec = match.command
        ctx = self._context(event)
        ctx.log.info(f"command '{spec.name}' from user {event.sender_id} in {event.channel_id}")

        async def run():
            ctx.args = parse_args(spec, match.args)
            return await spec.handler(ctx)

        return await self._invoke(ctx, run)

    async def _dispatch_interaction(self, event: InteractionEvent) -> Outcome:
        route = self.router.resolve(event.action_id)
        if route is None:
            logger.error(
                f"No handler for action '{event.action_id}' "
                f"(ts={event.correlation_id}, user={event.sender_id}); stale or unknown button"
            )
            return Outcome.UNROUTED

        ctx = self._context(event)
        ctx.log.info(f"action '{event.action_id}' from user {event.sender_id} in {event.channel_id}")

        async def run():
            if route.workflow is not None:
                ctx.token = self.codec.decode(event.callback_value, route.workflow, route.step)
            return await route.handler(ctx)

        return await self._invoke(ctx, run)

    async def _invoke(self, ctx: RequestContext, run: Callable[[], Awaitable[Any]]) -> Outcome:
        try:
            outcome = await run() or Outcome.OK
        except InvalidArguments as e:
            ctx.log.info(f"invalid arguments: {e}")
            await ctx.reply(views.invalid_arguments(str(e)))
            outcome = Outcome.INVALID_ARGUMENTS
        except DecodeError as e:
            value = getattr(ctx.event, "callback_value", "")
            ctx.log.warning(f"rejected workflow token {value!r}: {e}")
            await ctx.fail(views.invalid_interaction())
            outcome = Outcome.DECODE_ERROR
        except RemoteCallFailure as e:
            ctx.log.error(f"remote call failed: {e}")
            await ctx.fail(views.something_is_wrong(ctx.correlation_id))
            outcome = Outcome.REMOTE_FAILURE
        except Exception:
            ctx.log.exception("handler raised an unexpected error")
            await ctx.fail(views.something_is_wrong(ctx.correlation_id))
            outcome = Outcome.HANDLER_ERROR

        if outcome == Outcome.OK and ctx.delivery_failed:
            return Outcome.DELIVERY_FAILURE
        return outcome
