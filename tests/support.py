"""
Shared test doubles.

This module provides:
1. A recording chat transport
2. An httpx mock backend for the remote services
3. Event builders and constants
"""

import json
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from stagebot.errors import DeliveryFailure
from stagebot.events import ChatEvent, InteractionEvent, Message


# -----------------------------------------------------------------------------
# Test Constants
# -----------------------------------------------------------------------------
TEST_CHANNEL = "-100200300"
TEST_USER_ID = "4242"
TEST_USER_NAME = "operator"
TEST_CONTROL_URL = "http://production-control.test"
TEST_GITHUB_URL = "https://github.test"


# -----------------------------------------------------------------------------
# Recording Transport
# -----------------------------------------------------------------------------
class FakeTransport:
    """
    Records every outbound call.

    ``failures`` maps a method name to the number of upcoming calls of that
    method that raise DeliveryFailure.
    """

    def __init__(self):
        self.acknowledged: List[str] = []
        self.posts: List[Tuple[str, Message]] = []
        self.thread_posts: List[Tuple[str, str, Message]] = []
        self.updates: List[Tuple[str, str, Message]] = []
        self.failures: Dict[str, int] = {}

    def _maybe_fail(self, method: str) -> None:
        remaining = self.failures.get(method, 0)
        if remaining:
            self.failures[method] = remaining - 1
            raise DeliveryFailure(f"{method}: simulated failure")

    async def acknowledge(self, event) -> None:
        self._maybe_fail("acknowledge")
        self.acknowledged.append(event.correlation_id)

    async def post_message(self, channel_id: str, message: Message) -> None:
        self._maybe_fail("post_message")
        self.posts.append((channel_id, message))

    async def post_message_to_thread(self, channel_id: str, thread_ts: str, message: Message) -> None:
        self._maybe_fail("post_message_to_thread")
        self.thread_posts.append((channel_id, thread_ts, message))

    async def update_message(self, channel_id: str, message_ts: str, message: Message) -> None:
        self._maybe_fail("update_message")
        self.updates.append((channel_id, message_ts, message))

    @property
    def outbound(self) -> int:
        return len(self.posts) + len(self.thread_posts) + len(self.updates)


# -----------------------------------------------------------------------------
# Remote Service Mocks
# -----------------------------------------------------------------------------
class RecordingBackend:
    """
    httpx.MockTransport handler that records requests and answers from a
    (method, path) -> response table. Unknown routes answer 404.
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Callable]] = None):
        self.routes = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


def json_response(status: int, body) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=body)


def request_json(request: httpx.Request):
    return json.loads(request.content.decode("utf-8"))


# -----------------------------------------------------------------------------
# Event Builders
# -----------------------------------------------------------------------------
def chat(text: str, ts: str = "101", sender: str = TEST_USER_ID) -> ChatEvent:
    return ChatEvent(channel_id=TEST_CHANNEL, thread_ts=ts, sender_id=sender, text=text)


def press(
    action_id: str,
    value: str = "",
    ts: str = "202",
    original: Optional[Message] = None,
    sender: str = TEST_USER_ID,
    channel: str = TEST_CHANNEL,
    delivery_tag: Optional[str] = None,
) -> InteractionEvent:
    return InteractionEvent(
        channel_id=channel,
        message_ts=ts,
        sender_id=sender,
        action_id=action_id,
        callback_value=value,
        original_message=original,
        sender_name=TEST_USER_NAME,
        delivery_tag=delivery_tag or f"cbq-{ts}",
    )
