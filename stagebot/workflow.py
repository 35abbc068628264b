"""
Workflow Token Codec

Chat platforms deliver every button press as an independent, stateless event.
Multi-step workflows therefore carry their accumulated state through the UI:
each step renders buttons whose value is the encoded token for the next step.

Wire format::

    <kind>.<revision>:<step>:<value>[:<value>...]

Field names are not transmitted; they are implied by the (kind, step) schema.
Values are percent-encoded, so ``:`` never appears inside a value. The kind
tag carries a revision number so tokens rendered by an older revision of a
workflow are rejected instead of being misread.

Tokens are visible to the chat platform and to anyone reading the channel.
Never put secrets in them.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from .errors import DecodeError, EncodeError

MAX_TOKEN_LENGTH = 2048
SEPARATOR = ":"
INT_FIELD_MAX_DIGITS = 10


class ActionId(str, Enum):
    """Action identifiers attached to rendered buttons."""
    RELEASE_SELECT_REPOSITORY = "rel_repo"
    RELEASE_LEVEL_MAJOR = "rel_major"
    RELEASE_LEVEL_MINOR = "rel_minor"
    RELEASE_LEVEL_PATCH = "rel_patch"
    RELEASE_OK = "rel_ok"
    BROADCAST_SCENE_NEXT = "bc_next"
    CANCEL = "cancel"


class WorkflowKind(str, Enum):
    RELEASE = "release"
    BROADCAST = "broadcast"


class ReleaseStep(IntEnum):
    """Release workflow states that are carried in tokens."""
    AWAITING_REPOSITORY_SELECTION = 1
    AWAITING_LEVEL_SELECTION = 2
    AWAITING_CONFIRMATION = 3


class BroadcastStep(IntEnum):
    AWAITING_SCENE_ADVANCE = 1


@dataclass(frozen=True)
class FieldSpec:
    name: str
    integer: bool = False


@dataclass(frozen=True)
class WorkflowSchema:
    """Expected fields for every step of one workflow kind."""
    kind: str
    revision: int
    steps: Mapping[int, Tuple[FieldSpec, ...]]

    @property
    def tag(self) -> str:
        return f"{self.kind}.{self.revision}"


RELEASE_SCHEMA = WorkflowSchema(
    kind=WorkflowKind.RELEASE.value,
    revision=1,
    steps={
        ReleaseStep.AWAITING_REPOSITORY_SELECTION: (FieldSpec("repository"),),
        ReleaseStep.AWAITING_LEVEL_SELECTION: (FieldSpec("repository"),),
        ReleaseStep.AWAITING_CONFIRMATION: (FieldSpec("repository"), FieldSpec("level")),
    },
)

BROADCAST_SCHEMA = WorkflowSchema(
    kind=WorkflowKind.BROADCAST.value,
    revision=1,
    steps={
        BroadcastStep.AWAITING_SCENE_ADVANCE: (FieldSpec("track_id", integer=True),),
    },
)

DEFAULT_SCHEMAS = (RELEASE_SCHEMA, BROADCAST_SCHEMA)


@dataclass(frozen=True)
class WorkflowToken:
    """Snapshot of an in-progress workflow."""
    kind: str
    step: int
    fields: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def build(cls, kind: str, step: int, **fields: object) -> "WorkflowToken":
        """Convenience constructor; keyword order is preserved."""
        return cls(kind=as_text(kind), step=int(step),
                   fields=tuple((name, str(value)) for name, value in fields.items()))

    def get(self, name: str) -> str:
        for key, value in self.fields:
            if key == name:
                return value
        raise KeyError(name)

    def get_int(self, name: str) -> int:
        return int(self.get(name), 10)

    def as_dict(self) -> Dict[str, str]:
        return dict(self.fields)


def as_text(value: object) -> str:
    """Enum member or plain value -> its string form."""
    return value.value if isinstance(value, Enum) else str(value)


def _is_int_literal(value: str) -> bool:
    return value.isascii() and value.isdigit() and len(value) <= INT_FIELD_MAX_DIGITS


class TokenCodec:
    """
    Encodes and decodes WorkflowTokens against a fixed set of schemas.

    Decoding never touches shared state and only ever raises DecodeError,
    so it is safe to run for concurrent presses of the same button.
    """

    def __init__(
        self,
        schemas: Iterable[WorkflowSchema] = DEFAULT_SCHEMAS,
        max_length: int = MAX_TOKEN_LENGTH,
    ):
        self._schemas: Dict[str, WorkflowSchema] = {}
        for schema in schemas:
            if schema.kind in self._schemas:
                raise ValueError(f"duplicate workflow schema: {schema.kind}")
            self._schemas[schema.kind] = schema
        self.max_length = max_length

    def schema(self, kind: str) -> Optional[WorkflowSchema]:
        return self._schemas.get(as_text(kind))

    # -------------------------------------------------------------------------
    # Encode
    # -------------------------------------------------------------------------
    def encode(self, token: WorkflowToken) -> str:
        """
        Serialize a token.

        Raises:
            EncodeError: token does not fit its schema or exceeds max_length
        """
        schema = self._schemas.get(as_text(token.kind))
        if schema is None:
            raise EncodeError(f"unknown workflow kind: {token.kind}")
        expected = schema.steps.get(token.step)
        if expected is None:
            raise EncodeError(f"unknown step {token.step} for workflow {token.kind}")

        names = tuple(name for name, _ in token.fields)
        if names != tuple(f.name for f in expected):
            raise EncodeError(
                f"{token.kind} step {token.step} expects fields "
                f"{[f.name for f in expected]}, got {list(names)}"
            )

        parts = [schema.tag, str(int(token.step))]
        for spec, (_, value) in zip(expected, token.fields):
            if not value:
                raise EncodeError(f"field '{spec.name}' must not be empty")
            if spec.integer and not _is_int_literal(value):
                raise EncodeError(f"field '{spec.name}' must be a non-negative integer")
            try:
                parts.append(quote(value, safe=""))
            except UnicodeEncodeError:
                raise EncodeError(f"field '{spec.name}' is not encodable as UTF-8") from None

        encoded = SEPARATOR.join(parts)
        if len(encoded) > self.max_length:
            raise EncodeError(
                f"encoded token is {len(encoded)} characters, limit is {self.max_length}"
            )
        return encoded

    # -------------------------------------------------------------------------
    # Decode
    # -------------------------------------------------------------------------
    def decode(
        self,
        value: str,
        kind: Optional[str] = None,
        step: Optional[int] = None,
    ) -> WorkflowToken:
        """
        Parse a token received from a button press.

        Args:
            value: raw button value
            kind: workflow kind the receiving action belongs to (optional)
            step: step the receiving action handles (optional)

        Raises:
            DecodeError: for any malformed, stale, foreign or tampered token
        """
        if not isinstance(value, str) or not value:
            raise DecodeError("empty token")
        if len(value) > self.max_length:
            raise DecodeError(f"token longer than {self.max_length} characters")

        parts = value.split(SEPARATOR)
        if len(parts) < 2:
            raise DecodeError("token has no step")

        tag, step_text, raw_values = parts[0], parts[1], parts[2:]
        token_kind, _, revision = tag.partition(".")

        schema = self._schemas.get(token_kind)
        if schema is None:
            raise DecodeError(f"unknown workflow kind: {token_kind!r}")
        if kind is not None and token_kind != as_text(kind):
            raise DecodeError(f"token for workflow {token_kind!r}, expected {as_text(kind)!r}")
        if revision != str(schema.revision):
            raise DecodeError(
                f"stale {token_kind} token revision {revision!r}, current is {schema.revision}"
            )

        if not _is_int_literal(step_text):
            raise DecodeError(f"non-numeric step: {step_text!r}")
        token_step = int(step_text, 10)
        expected = schema.steps.get(token_step)
        if expected is None:
            raise DecodeError(f"unknown step {token_step} for workflow {token_kind}")
        if step is not None and token_step != int(step):
            raise DecodeError(f"token at step {token_step}, expected step {int(step)}")

        if len(raw_values) != len(expected):
            raise DecodeError(
                f"{token_kind} step {token_step} expects {len(expected)} field(s), "
                f"got {len(raw_values)}"
            )

        fields = []
        for spec, raw in zip(expected, raw_values):
            # canonical fields are percent-encoded ASCII
            if not raw.isascii():
                raise DecodeError(f"field '{spec.name}' contains non-ASCII characters")
            try:
                decoded = unquote(raw, errors="strict")
            except UnicodeDecodeError:
                raise DecodeError(f"field '{spec.name}' is not valid UTF-8") from None
            if not decoded:
                raise DecodeError(f"field '{spec.name}' is empty")
            if quote(decoded, safe="") != raw:
                raise DecodeError(f"field '{spec.name}' is not canonically encoded")
            if spec.integer and not _is_int_literal(decoded):
                raise DecodeError(f"field '{spec.name}' must be numeric, got {decoded!r}")
            fields.append((spec.name, decoded))

        return WorkflowToken(kind=token_kind, step=token_step, fields=tuple(fields))
