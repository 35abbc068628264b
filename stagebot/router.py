"""
Interaction Router

Maps button action identifiers to handlers. Every interactive element is
rendered by the bot itself, so an unknown action id means a bug or a stale
message; the pipeline logs it but still acknowledges the event.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import StartupConfigurationError
from .registry import Handler
from .workflow import as_text

logger = logging.getLogger("stagebot.router")


@dataclass(frozen=True)
class InteractionRoute:
    """
    Handler binding for one action id.

    When ``workflow`` is set, the button value is decoded as a token of that
    kind (and ``step``, if given) before the handler runs.
    """
    action_id: str
    handler: Handler
    workflow: Optional[str] = None
    step: Optional[int] = None


class InteractionRouter:
    """action_id -> InteractionRoute table, read-only after ``freeze()``."""

    def __init__(self):
        self._routes: Dict[str, InteractionRoute] = {}
        self._frozen = False

    def register(
        self,
        action_id: str,
        handler: Handler,
        workflow: Optional[str] = None,
        step: Optional[int] = None,
    ) -> InteractionRoute:
        """
        Bind an action id to a handler.

        Raises:
            StartupConfigurationError: duplicate action id or router frozen
        """
        action_id = as_text(action_id)
        if self._frozen:
            raise StartupConfigurationError(
                f"cannot register action '{action_id}': router is frozen"
            )
        if action_id in self._routes:
            raise StartupConfigurationError(f"action '{action_id}' is already registered")
        if step is not None and workflow is None:
            raise StartupConfigurationError(f"action '{action_id}': step given without workflow")

        route = InteractionRoute(
            action_id=action_id,
            handler=handler,
            workflow=as_text(workflow) if workflow is not None else None,
            step=int(step) if step is not None else None,
        )
        self._routes[action_id] = route
        logger.debug(f"Registered action: {action_id}")
        return route

    def resolve(self, action_id: str) -> Optional[InteractionRoute]:
        return self._routes.get(action_id)

    def freeze(self) -> None:
        self._frozen = True

    def __len__(self) -> int:
        return len(self._routes)
