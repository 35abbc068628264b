"""help, version and the shared Cancel button."""

import logging

from .. import __version__, views
from ..pipeline import RequestContext
from ..registry import CommandRegistry
from ..router import InteractionRouter
from ..workflow import ActionId

logger = logging.getLogger("stagebot.handlers.common")

BOT_NAME = "stagebot"


class CommonController:
    def __init__(self, registry: CommandRegistry):
        self.registry = registry

    def register(self, registry: CommandRegistry, router: InteractionRouter) -> None:
        registry.register("help", "Show available commands", self.help)
        registry.register("version", "Show the bot version", self.version)
        router.register(ActionId.CANCEL, self.cancel)

    async def help(self, ctx: RequestContext) -> None:
        await ctx.reply(views.command_list(self.registry.list()))

    async def version(self, ctx: RequestContext) -> None:
        await ctx.reply(views.version(BOT_NAME, __version__))

    async def cancel(self, ctx: RequestContext) -> None:
        """Ends any workflow: the message is replaced and its buttons go away."""
        event = ctx.event
        ctx.log.info(f"workflow canceled by user {event.sender_id}")
        await ctx.update(views.canceled(event.sender_name or event.sender_id))
