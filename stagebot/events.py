"""
Inbound event and outbound message value types.

Events are produced per inbound update, consumed by exactly one handler and
then discarded. Nothing here is persisted.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Button:
    """Inline button. ``value`` carries an encoded workflow token (or nothing)."""
    label: str
    action_id: str
    value: str = ""


@dataclass(frozen=True)
class Message:
    """Rendered reply: text plus rows of buttons."""
    text: str
    buttons: Tuple[Tuple[Button, ...], ...] = ()

    @property
    def is_interactive(self) -> bool:
        return any(row for row in self.buttons)


@dataclass(frozen=True)
class ChatEvent:
    """Free-form text addressed to the bot."""
    channel_id: str
    thread_ts: str
    sender_id: str
    text: str

    @property
    def correlation_id(self) -> str:
        return self.thread_ts


@dataclass(frozen=True)
class InteractionEvent:
    """Activation of a button the bot rendered earlier."""
    channel_id: str
    message_ts: str
    sender_id: str
    action_id: str
    callback_value: str = ""
    original_message: Optional[Message] = None
    sender_name: str = ""
    delivery_tag: Optional[str] = None

    @property
    def correlation_id(self) -> str:
        return self.message_ts
