"""
Telegram transport.

Adapts python-telegram-bot updates to ChatEvent / InteractionEvent, and the
pipeline's post/update calls to Bot API requests.

Button values travel as callback data ``<action_id>|<token>``. Telegram caps
callback data at 64 bytes; a button that does not fit is a delivery failure,
never silently truncated.
"""

import logging
from typing import Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyParameters, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .app import create_pipeline
from .config import Config
from .errors import DeliveryFailure
from .events import Button, ChatEvent, InteractionEvent, Message
from .pipeline import DispatchPipeline, Event

logger = logging.getLogger("stagebot.telegram")

CALLBACK_DATA_LIMIT = 64  # bytes, Bot API limit
CALLBACK_SEPARATOR = "|"
PIPELINE_KEY = "pipeline"
SHUTDOWN_TIMEOUT = 10.0  # seconds


# -----------------------------------------------------------------------------
# Callback data & keyboards
# -----------------------------------------------------------------------------
def encode_callback_data(button: Button) -> str:
    data = f"{button.action_id}{CALLBACK_SEPARATOR}{button.value}"
    size = len(data.encode("utf-8"))
    if size > CALLBACK_DATA_LIMIT:
        raise DeliveryFailure(
            f"callback data for '{button.label}' is {size} bytes, limit is {CALLBACK_DATA_LIMIT}"
        )
    return data


def parse_callback_data(data: Optional[str]) -> Tuple[str, str]:
    """``rel_ok|release.1:3:foo:minor`` -> ("rel_ok", "release.1:3:foo:minor")"""
    action_id, _, value = (data or "").partition(CALLBACK_SEPARATOR)
    return action_id, value


def to_keyboard(message: Message) -> Optional[InlineKeyboardMarkup]:
    if not message.is_interactive:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(b.label, callback_data=encode_callback_data(b)) for b in row]
        for row in message.buttons
        if row
    ])


def message_from_telegram(tg_message) -> Optional[Message]:
    """Rebuild a Message from a rendered Telegram message (text + inline keyboard)."""
    text = getattr(tg_message, "text", None)
    if text is None:
        return None
    rows = []
    markup = getattr(tg_message, "reply_markup", None)
    if markup is not None:
        for row in markup.inline_keyboard:
            buttons = []
            for key in row:
                if not isinstance(key.callback_data, str):
                    continue
                action_id, value = parse_callback_data(key.callback_data)
                buttons.append(Button(key.text, action_id, value))
            rows.append(tuple(buttons))
    return Message(text, tuple(rows))


# -----------------------------------------------------------------------------
# Update -> Event
# -----------------------------------------------------------------------------
def chat_event_from_update(update: Update) -> Optional[ChatEvent]:
    message = update.effective_message
    user = update.effective_user
    if message is None or not message.text or user is None:
        return None
    return ChatEvent(
        channel_id=str(message.chat_id),
        thread_ts=str(message.message_id),
        sender_id=str(user.id),
        text=message.text,
    )


def interaction_event_from_update(update: Update) -> Optional[InteractionEvent]:
    query = update.callback_query
    if query is None or query.message is None:
        return None
    action_id, value = parse_callback_data(query.data)
    user = query.from_user
    return InteractionEvent(
        channel_id=str(query.message.chat.id),
        message_ts=str(query.message.message_id),
        sender_id=str(user.id),
        action_id=action_id,
        callback_value=value,
        original_message=message_from_telegram(query.message),
        sender_name=user.username or user.full_name or "",
        delivery_tag=query.id,
    )


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------
class TelegramTransport:
    """Bot API calls behind the pipeline's Transport interface."""

    def __init__(self, bot):
        self.bot = bot

    async def acknowledge(self, event: Event) -> None:
        # text messages need no acknowledgement; callback queries must be answered
        if isinstance(event, InteractionEvent) and event.delivery_tag:
            try:
                await self.bot.answer_callback_query(event.delivery_tag)
            except TelegramError as e:
                raise DeliveryFailure(f"answerCallbackQuery: {e}") from e

    async def post_message(self, channel_id: str, message: Message) -> None:
        try:
            await self.bot.send_message(
                chat_id=channel_id,
                text=message.text,
                reply_markup=to_keyboard(message),
            )
        except TelegramError as e:
            raise DeliveryFailure(f"sendMessage: {e}") from e

    async def post_message_to_thread(self, channel_id: str, thread_ts: str, message: Message) -> None:
        try:
            await self.bot.send_message(
                chat_id=channel_id,
                text=message.text,
                reply_markup=to_keyboard(message),
                reply_parameters=ReplyParameters(message_id=int(thread_ts)),
            )
        except TelegramError as e:
            raise DeliveryFailure(f"sendMessage (reply): {e}") from e

    async def update_message(self, channel_id: str, message_ts: str, message: Message) -> None:
        try:
            await self.bot.edit_message_text(
                text=message.text,
                chat_id=channel_id,
                message_id=int(message_ts),
                reply_markup=to_keyboard(message),
            )
        except BadRequest as e:
            if "not modified" in str(e).lower():
                logger.debug(f"Message {message_ts} unchanged, skipping edit")
                return
            raise DeliveryFailure(f"editMessageText: {e}") from e
        except TelegramError as e:
            raise DeliveryFailure(f"editMessageText: {e}") from e


# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------
def _pipeline(context: ContextTypes.DEFAULT_TYPE) -> DispatchPipeline:
    return context.application.bot_data[PIPELINE_KEY]


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    event = chat_event_from_update(update)
    if event is not None:
        _pipeline(context).submit(event)


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    event = interaction_event_from_update(update)
    if event is None:
        logger.warning("Callback query without an accessible message, ignoring")
        return
    _pipeline(context).submit(event)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Errors raised by the update-delivery machinery itself."""
    logger.error(f"Update {update} caused error {context.error}", exc_info=context.error)


async def _shutdown(application: Application) -> None:
    pipeline: Optional[DispatchPipeline] = application.bot_data.get(PIPELINE_KEY)
    if pipeline is not None:
        await pipeline.shutdown(timeout=SHUTDOWN_TIMEOUT)


def build_application(config: Config) -> Application:
    """
    Build the Telegram application with the dispatch pipeline attached.

    Raises:
        StartupConfigurationError: from command/action registration
    """
    application = (
        Application.builder()
        .token(config.telegram.token)
        .post_shutdown(_shutdown)
        .build()
    )
    pipeline = create_pipeline(TelegramTransport(application.bot), config)
    application.bot_data[PIPELINE_KEY] = pipeline

    application.add_handler(CallbackQueryHandler(handle_callback))
    application.add_handler(MessageHandler(filters.UpdateType.MESSAGE & filters.TEXT, handle_text))
    application.add_error_handler(error_handler)
    return application
