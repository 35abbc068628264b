"""
Command Matcher

Turns free-form chat text into a registered command plus its raw arguments.
This is a filtering predicate, not a parser that fails: text that does not
start with a registered command yields None and nothing is reported, so other
consumers of the same event stream are not disturbed.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from .registry import CommandRegistry, CommandSpec

# "@stagebot", "<@U024BE7LH>" or "<@U024BE7LH|stagebot>", optionally followed by , or :
MENTION_PREFIX = re.compile(r"^\s*(?:<@[^>\s]+>|@\w+)[\s,:]*")


@dataclass(frozen=True)
class CommandMatch:
    """A matched command and its remaining (unvalidated) arguments."""
    command: CommandSpec
    args: List[str]


def strip_mention(text: str) -> str:
    """Remove one leading mention addressing the bot."""
    return MENTION_PREFIX.sub("", text, count=1).strip()


def normalize_command_token(token: str) -> str:
    """``/Help@stagebot`` -> ``help``."""
    token = token.lower()
    if token.startswith("/"):
        token = token[1:]
    name, _, _ = token.partition("@")
    return name


class CommandMatcher:
    """Resolves chat text against a CommandRegistry."""

    def __init__(self, registry: CommandRegistry):
        self._registry = registry

    def match(self, text: str) -> Optional[CommandMatch]:
        """
        Match text to a command.

        Multi-word names are matched longest-first, so ``track automate enable 7``
        resolves to ``track automate enable`` with args ``["7"]`` even when a
        shorter ``track`` command exists.
        """
        if not text:
            return None

        tokens = strip_mention(text).split()
        if not tokens:
            return None

        words = [normalize_command_token(tokens[0])] + [t.lower() for t in tokens[1:]]
        if not words[0]:
            return None

        for length in range(min(self._registry.max_words, len(words)), 0, -1):
            spec = self._registry.lookup(" ".join(words[:length]))
            if spec is not None:
                return CommandMatch(command=spec, args=tokens[length:])
        return None
