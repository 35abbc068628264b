"""
Unit Tests for the Interaction Router
"""

import pytest

from stagebot.errors import StartupConfigurationError
from stagebot.router import InteractionRouter
from stagebot.workflow import ActionId, ReleaseStep, WorkflowKind


async def noop(ctx):
    return None


class TestInteractionRouter:
    """Tests for action id -> handler binding."""

    def test_resolve_registered_action(self):
        router = InteractionRouter()
        router.register(ActionId.RELEASE_OK, noop, workflow=WorkflowKind.RELEASE,
                        step=ReleaseStep.AWAITING_CONFIRMATION)
        route = router.resolve("rel_ok")
        assert route.handler is noop
        assert route.workflow == "release"
        assert route.step == 3

    def test_route_without_workflow(self):
        router = InteractionRouter()
        router.register(ActionId.CANCEL, noop)
        route = router.resolve("cancel")
        assert route.workflow is None
        assert route.step is None

    def test_unknown_action_resolves_to_none(self):
        assert InteractionRouter().resolve("bogus") is None

    def test_duplicate_action_rejected(self):
        router = InteractionRouter()
        router.register("cancel", noop)
        with pytest.raises(StartupConfigurationError):
            router.register(ActionId.CANCEL, noop)

    def test_step_requires_workflow(self):
        with pytest.raises(StartupConfigurationError):
            InteractionRouter().register("rel_ok", noop, step=3)

    def test_frozen_router_rejects_registration(self):
        router = InteractionRouter()
        router.freeze()
        with pytest.raises(StartupConfigurationError):
            router.register("cancel", noop)
        assert len(router) == 0
