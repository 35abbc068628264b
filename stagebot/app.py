"""
Application assembly.

Builds the registry and router from the controllers, freezes both, and wires
them into a DispatchPipeline. Registration problems surface here, before the
bot connects to Telegram.
"""

import logging
from typing import Optional

from .config import Config
from .github import GitHubClient
from .handlers import CommonController, ReleaseController, TrackController
from .matcher import CommandMatcher
from .pipeline import DispatchPipeline, Transport
from .registry import CommandRegistry
from .remote import ProductionControlClient
from .router import InteractionRouter
from .workflow import TokenCodec

logger = logging.getLogger("stagebot.app")


def create_pipeline(
    transport: Transport,
    config: Config,
    track_client: Optional[ProductionControlClient] = None,
    github_client: Optional[GitHubClient] = None,
    codec: Optional[TokenCodec] = None,
) -> DispatchPipeline:
    """
    Build a ready-to-run pipeline.

    Clients default to ones built from ``config``; tests pass their own.

    Raises:
        StartupConfigurationError: duplicate commands or actions
    """
    codec = codec or TokenCodec()
    if track_client is None:
        track_client = ProductionControlClient(
            config.production_control.url,
            timeout=config.production_control.timeout,
            max_retries=config.production_control.max_retries,
        )
    if github_client is None and config.github.token:
        github_client = GitHubClient(config.github.token, api_url=config.github.api_url)

    registry = CommandRegistry()
    router = InteractionRouter()

    controllers = [
        CommonController(registry),
        TrackController(track_client, codec),
        ReleaseController(
            github_client,
            [t.model_copy(update={"owner": config.target_owner(t)})
             for t in config.release.targets],
            codec,
            url=config.release.url,
        ),
    ]
    for controller in controllers:
        controller.register(registry, router)

    registry.freeze()
    router.freeze()
    logger.info(f"Registered {len(registry)} command(s) and {len(router)} action(s)")

    return DispatchPipeline(transport, CommandMatcher(registry), router, codec)
