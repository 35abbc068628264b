"""
Track commands.

``track list`` renders a control panel with one "next scene" button per
track. Each button carries a broadcast token holding the track id, so a
press is self-describing and needs no server-side session.
"""

import logging
from typing import Optional

from .. import views
from ..pipeline import RequestContext
from ..registry import CommandRegistry, track_id_arg
from ..remote import ProductionControlClient
from ..router import InteractionRouter
from ..workflow import ActionId, BroadcastStep, TokenCodec, WorkflowKind, WorkflowToken

logger = logging.getLogger("stagebot.handlers.track")


def scene_idempotency_key(
    channel_id: str, message_ts: str, track_id: int, delivery_tag: Optional[str]
) -> Optional[str]:
    """
    Identifies one button press. Redeliveries of a press share its callback
    query id and therefore its key; a new press on the same panel gets a new one.
    """
    if not delivery_tag:
        return None
    return f"{channel_id}:{message_ts}:{track_id}:{delivery_tag}"


class TrackController:
    def __init__(self, client: ProductionControlClient, codec: TokenCodec):
        self.client = client
        self.codec = codec

    def register(self, registry: CommandRegistry, router: InteractionRouter) -> None:
        registry.register("track list", "List tracks with scene controls", self.list_tracks)
        registry.register("track automate enable", "Enable automation on a track",
                          self.enable_automation, args=(track_id_arg(),))
        registry.register("track automate disable", "Disable automation on a track",
                          self.disable_automation, args=(track_id_arg(),))
        router.register(ActionId.BROADCAST_SCENE_NEXT, self.next_scene,
                        workflow=WorkflowKind.BROADCAST,
                        step=BroadcastStep.AWAITING_SCENE_ADVANCE)

    async def list_tracks(self, ctx: RequestContext) -> None:
        tracks = await self.client.list_tracks()
        tokens = [
            self.codec.encode(WorkflowToken.build(
                WorkflowKind.BROADCAST, BroadcastStep.AWAITING_SCENE_ADVANCE, track_id=track.id,
            ))
            for track in tracks
        ]
        ctx.log.info(f"listing {len(tracks)} track(s)")
        await ctx.post(views.track_list(tracks, tokens))

    async def enable_automation(self, ctx: RequestContext) -> None:
        (track_id,) = ctx.args
        name = await self.client.enable_automation(track_id)
        ctx.log.info(f"automation enabled on track {track_id} ({name})")
        await ctx.reply(views.automation_enabled(name))

    async def disable_automation(self, ctx: RequestContext) -> None:
        (track_id,) = ctx.args
        name = await self.client.disable_automation(track_id)
        ctx.log.info(f"automation disabled on track {track_id} ({name})")
        await ctx.reply(views.automation_disabled(name))

    async def next_scene(self, ctx: RequestContext) -> None:
        event = ctx.event
        track_id = ctx.token.get_int("track_id")
        key = scene_idempotency_key(event.channel_id, event.message_ts,
                                    track_id, event.delivery_tag)

        await self.client.move_scene_to_next(track_id, idempotency_key=key)
        ctx.log.info(f"track {track_id} moved to the next scene by user {event.sender_id}")

        # the panel keeps its buttons so the next scene can be pushed from it
        await ctx.update(views.scene_moved(event.original_message, track_id))
        await ctx.reply(views.scene_switch_pushed_by(event.sender_name or event.sender_id))
