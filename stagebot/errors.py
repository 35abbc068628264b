"""
Error taxonomy.

Handlers raise these; the dispatch pipeline decides what the user sees.
"No match" is not an error: the matcher simply returns None.
"""


class StagebotError(Exception):
    """Base class for all bot errors."""


class StartupConfigurationError(StagebotError):
    """Invalid configuration or registration detected before the event loop starts."""


class InvalidArguments(StagebotError):
    """User input is malformed. The message is shown to the user as-is."""


class DecodeError(StagebotError):
    """A workflow token is malformed, stale or belongs to another workflow."""


class EncodeError(StagebotError, ValueError):
    """A workflow token does not fit its schema or the length ceiling."""


class RemoteCallFailure(StagebotError):
    """A downstream service call failed or timed out."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}" if detail else f"{operation} failed")


class ReferenceAlreadyExists(RemoteCallFailure):
    """The release branch already exists (the same step was submitted twice)."""


class DeliveryFailure(StagebotError):
    """A reply could not be posted or updated through the transport."""
