"""
Command Registry

Process-wide table of text commands, built once at startup and read-only
afterwards. Each command carries its usage metadata (argument descriptors),
which is used both for argument validation and for the ``help`` listing.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import InvalidArguments, StartupConfigurationError

logger = logging.getLogger("stagebot.registry")

Handler = Callable[..., Awaitable[Any]]

INT32_MAX = 2 ** 31 - 1


def _is_decimal(raw: str) -> bool:
    # ASCII digits with an optional leading minus
    digits = raw[1:] if raw.startswith("-") else raw
    return digits.isascii() and digits.isdigit()


class ArgKind(str, Enum):
    """Supported positional argument kinds."""
    INT = "int"
    STR = "str"


@dataclass(frozen=True)
class ArgSpec:
    """Positional argument descriptor."""
    name: str
    kind: ArgKind = ArgKind.STR
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    @property
    def placeholder(self) -> str:
        return f"<{self.name}>"


@dataclass(frozen=True)
class CommandSpec:
    """A registered text command."""
    name: str
    description: str
    handler: Handler
    args: Tuple[ArgSpec, ...] = ()
    url: Optional[str] = None

    @property
    def min_args(self) -> int:
        return len(self.args)

    @property
    def usage(self) -> str:
        return " ".join([self.name] + [a.placeholder for a in self.args])


def normalize_name(name: str) -> str:
    """Lower-case a command name and collapse its whitespace."""
    return " ".join(name.lower().split())


def track_id_arg(name: str = "trackId") -> ArgSpec:
    """Integer track identifier, bounded to the service's int32 range."""
    return ArgSpec(name, ArgKind.INT, minimum=0, maximum=INT32_MAX)


def parse_args(spec: CommandSpec, args: List[str]) -> Tuple[Any, ...]:
    """
    Validate raw arguments against a command's descriptors.

    Returns the converted values (ints for INT args). Extra trailing
    arguments are ignored.

    Raises:
        InvalidArguments: with a message naming the offending argument
    """
    if len(args) < spec.min_args:
        missing = spec.args[len(args)]
        raise InvalidArguments(
            f"missing argument {missing.placeholder}: `{spec.name}` requires "
            f"at least {spec.min_args} argument(s) (usage: `{spec.usage}`)"
        )

    values: List[Any] = []
    for position, (arg, raw) in enumerate(zip(spec.args, args), start=1):
        if arg.kind == ArgKind.STR:
            values.append(raw)
            continue

        if not _is_decimal(raw):
            raise InvalidArguments(
                f"argument #{position} ({arg.name}) must be an integer, got `{raw}`"
            )
        value = int(raw, 10)

        if (arg.minimum is not None and value < arg.minimum) or (
            arg.maximum is not None and value > arg.maximum
        ):
            raise InvalidArguments(
                f"argument #{position} ({arg.name}) must be between "
                f"{arg.minimum} and {arg.maximum}, got {value}"
            )
        values.append(value)

    return tuple(values)


class CommandRegistry:
    """
    Name -> CommandSpec table.

    Registration happens single-threaded before the event loop starts.
    After ``freeze()`` the registry never mutates, so lookups need no locking.
    """

    def __init__(self):
        self._commands: Dict[str, CommandSpec] = {}
        self._frozen = False
        self._max_words = 0

    def register(
        self,
        name: str,
        description: str,
        handler: Handler,
        args: Tuple[ArgSpec, ...] = (),
        url: Optional[str] = None,
    ) -> CommandSpec:
        """
        Register a command.

        Raises:
            StartupConfigurationError: duplicate name, empty name, or registry frozen
        """
        if self._frozen:
            raise StartupConfigurationError(
                f"cannot register command '{name}': registry is frozen"
            )
        key = normalize_name(name)
        if not key:
            raise StartupConfigurationError("command name must not be empty")
        if key in self._commands:
            raise StartupConfigurationError(f"command '{key}' is already registered")

        spec = CommandSpec(name=key, description=description, handler=handler,
                           args=tuple(args), url=url)
        self._commands[key] = spec
        self._max_words = max(self._max_words, len(key.split()))
        logger.debug(f"Registered command: {spec.usage}")
        return spec

    def lookup(self, name: str) -> Optional[CommandSpec]:
        return self._commands.get(normalize_name(name))

    def list(self) -> List[CommandSpec]:
        """All commands in registration order."""
        return list(self._commands.values())

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def max_words(self) -> int:
        """Word count of the longest registered command name."""
        return self._max_words

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: str) -> bool:
        return normalize_name(name) in self._commands
