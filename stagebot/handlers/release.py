"""
Release workflow.

    release            -> pick a repository      (token step 1: repository)
    rel_repo           -> pick a release level   (token step 2: repository)
    rel_major|minor|patch -> confirm             (token step 3: repository, level)
    rel_ok             -> open the release pull request, terminal
    cancel             -> terminal at any step

Every step replaces the message it was pressed on, so only the buttons of
the current step are ever on screen. The state lives entirely in the tokens.
"""

import logging
from enum import Enum
from typing import Dict, Optional, Sequence

from .. import views
from ..config import ReleaseTarget
from ..errors import DecodeError, ReferenceAlreadyExists
from ..github import GitHubClient, release_branch_name
from ..pipeline import Outcome, RequestContext
from ..registry import CommandRegistry
from ..router import InteractionRouter
from ..workflow import ActionId, ReleaseStep, TokenCodec, WorkflowKind, WorkflowToken

logger = logging.getLogger("stagebot.handlers.release")


class ReleaseLevel(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


LEVEL_ACTIONS = {
    ActionId.RELEASE_LEVEL_MAJOR: ReleaseLevel.MAJOR,
    ActionId.RELEASE_LEVEL_MINOR: ReleaseLevel.MINOR,
    ActionId.RELEASE_LEVEL_PATCH: ReleaseLevel.PATCH,
}


class ReleaseController:
    def __init__(
        self,
        github: Optional[GitHubClient],
        targets: Sequence[ReleaseTarget],
        codec: TokenCodec,
        url: Optional[str] = None,
    ):
        self.github = github
        self.targets: Dict[str, ReleaseTarget] = {t.name: t for t in targets}
        self.codec = codec
        self.url = url

    def register(self, registry: CommandRegistry, router: InteractionRouter) -> None:
        registry.register("release", "Create a release pull request", self.start, url=self.url)
        router.register(ActionId.RELEASE_SELECT_REPOSITORY, self.select_repository,
                        workflow=WorkflowKind.RELEASE,
                        step=ReleaseStep.AWAITING_REPOSITORY_SELECTION)
        for action_id in LEVEL_ACTIONS:
            router.register(action_id, self.select_level,
                            workflow=WorkflowKind.RELEASE,
                            step=ReleaseStep.AWAITING_LEVEL_SELECTION)
        router.register(ActionId.RELEASE_OK, self.confirm,
                        workflow=WorkflowKind.RELEASE,
                        step=ReleaseStep.AWAITING_CONFIRMATION)

    def _token(self, step: ReleaseStep, **fields: object) -> str:
        return self.codec.encode(WorkflowToken.build(WorkflowKind.RELEASE, step, **fields))

    def _target(self, token: WorkflowToken) -> ReleaseTarget:
        # the target list can change between the render and the press
        name = token.get("repository")
        target = self.targets.get(name)
        if target is None:
            raise DecodeError(f"unknown release target {name!r}")
        return target

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------
    async def start(self, ctx: RequestContext) -> None:
        if not self.targets:
            await ctx.reply(views.release_no_targets())
            return
        options = [
            (name, self._token(ReleaseStep.AWAITING_REPOSITORY_SELECTION, repository=name))
            for name in self.targets
        ]
        await ctx.reply(views.release_select_repository(options))

    async def select_repository(self, ctx: RequestContext) -> None:
        target = self._target(ctx.token)
        token = self._token(ReleaseStep.AWAITING_LEVEL_SELECTION, repository=target.name)
        await ctx.update(views.release_select_level(target.name, token))

    async def select_level(self, ctx: RequestContext) -> None:
        target = self._target(ctx.token)
        level = LEVEL_ACTIONS[ActionId(ctx.event.action_id)]
        token = self._token(ReleaseStep.AWAITING_CONFIRMATION,
                            repository=target.name, level=level.value)
        await ctx.update(views.release_confirm(target.name, level.value, token))

    async def confirm(self, ctx: RequestContext) -> Optional[Outcome]:
        target = self._target(ctx.token)
        try:
            level = ReleaseLevel(ctx.token.get("level"))
        except ValueError:
            raise DecodeError(f"unknown release level {ctx.token.get('level')!r}") from None
        if self.github is None:
            raise RuntimeError("release confirmed but no GitHub client is configured")

        event = ctx.event
        owner = target.owner
        branch = release_branch_name(level.value, event.channel_id, event.message_ts)

        # buttons go away before the remote call, so a second press has nothing to hit
        await ctx.update(views.release_executing(target.name, level.value))

        try:
            pull = await self.github.create_release_pull_request(
                owner=owner,
                repo=target.name,
                base_branch=target.base_branch,
                level=level.value,
                branch=branch,
                requested_by=event.sender_name or event.sender_id,
            )
        except ReferenceAlreadyExists:
            ctx.log.warning(
                f"release branch {branch} already exists for {owner}/{target.name}; "
                "ignoring repeated confirmation"
            )
            # a late duplicate must not leave "executing" over the finished release
            existing = await self.github.find_pull_request(owner, target.name, branch)
            if existing is not None:
                await ctx.update(views.release_completed(target.name, level.value, existing.url))
            return Outcome.DUPLICATE

        ctx.log.info(f"release PR #{pull.number} opened for {owner}/{target.name} ({level.value})")
        await ctx.update(views.release_completed(target.name, level.value, pull.url))
        return None
