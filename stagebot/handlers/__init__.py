"""
Command and interaction handlers.

Each controller owns one feature area and registers its commands and button
routes with ``register()``. Handlers take a RequestContext, reply through it,
and raise on failure; the dispatch pipeline renders the failure.
"""

from .common import CommonController
from .release import ReleaseController, ReleaseLevel
from .track import TrackController

__all__ = ["CommonController", "ReleaseController", "ReleaseLevel", "TrackController"]
