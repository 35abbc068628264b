"""
Reply rendering.

Every user-visible message is built here. Internal error text never reaches
these functions; failures are rendered as generic notices.
"""

from typing import Iterable, List, Optional, Sequence

from .events import Button, Message
from .registry import CommandSpec
from .workflow import ActionId

SCENE_STATUS_PREFIX = "⏭ "


def something_is_wrong(correlation_id: Optional[str] = None) -> Message:
    text = "⚠️ Something went wrong. Please try again later."
    if correlation_id:
        text += f"\n(ref: {correlation_id})"
    return Message(text)


def invalid_arguments(detail: str) -> Message:
    return Message(f"❌ Invalid arguments: {detail}")


def invalid_interaction() -> Message:
    return Message(
        "❌ This button is no longer valid. Please start again from the original command."
    )


def canceled(user_name: str = "") -> Message:
    suffix = f" by {user_name}" if user_name else ""
    return Message(f"🚫 Canceled{suffix}.")


def cancel_button() -> Button:
    return Button("Cancel", ActionId.CANCEL.value)


# -----------------------------------------------------------------------------
# Common
# -----------------------------------------------------------------------------
def command_list(commands: Iterable[CommandSpec]) -> Message:
    lines = ["Available commands:", ""]
    for spec in commands:
        line = f"• {spec.usage} - {spec.description}"
        if spec.url:
            line += f" ({spec.url})"
        lines.append(line)
    return Message("\n".join(lines))


def version(name: str, number: str) -> Message:
    return Message(f"{name} {number}")


# -----------------------------------------------------------------------------
# Tracks
# -----------------------------------------------------------------------------
def track_list(tracks: Sequence, scene_tokens: Sequence[str]) -> Message:
    """One line per track, with a "next scene" button per track."""
    if not tracks:
        return Message("No tracks are registered.")

    lines = ["Tracks:", ""]
    rows = []
    for track, token in zip(tracks, scene_tokens):
        lines.append(f"• [{track.id}] {track.name}")
        rows.append((Button(f"⏭ Next scene: {track.name}",
                            ActionId.BROADCAST_SCENE_NEXT.value, token),))
    return Message("\n".join(lines), tuple(rows))


def automation_enabled(track_name: str) -> Message:
    return Message(f"✅ Automation enabled on {track_name}")


def automation_disabled(track_name: str) -> Message:
    return Message(f"⏸ Automation disabled on {track_name}")


def scene_moved(original: Optional[Message], track_id: int) -> Message:
    """Keep the control panel as rendered and append a status line."""
    status = f"{SCENE_STATUS_PREFIX}Track {track_id} moved to the next scene"
    if original is None:
        return Message(status)
    # replace the status line of a previous press
    base = original.text.split(f"\n\n{SCENE_STATUS_PREFIX}", 1)[0]
    return Message(f"{base}\n\n{status}", original.buttons)


def scene_switch_pushed_by(user_name: str) -> Message:
    return Message(f"Switching was pushed by {user_name}")


# -----------------------------------------------------------------------------
# Release workflow
# -----------------------------------------------------------------------------
def release_no_targets() -> Message:
    return Message("No release targets are configured.")


def release_select_repository(options: Sequence[tuple]) -> Message:
    """``options`` is a sequence of (repository name, encoded token)."""
    rows: List[tuple] = [
        (Button(name, ActionId.RELEASE_SELECT_REPOSITORY.value, token),)
        for name, token in options
    ]
    rows.append((cancel_button(),))
    return Message("📦 Select the repository to release", tuple(rows))


def release_select_level(repository: str, token: str) -> Message:
    levels = (
        Button("major", ActionId.RELEASE_LEVEL_MAJOR.value, token),
        Button("minor", ActionId.RELEASE_LEVEL_MINOR.value, token),
        Button("patch", ActionId.RELEASE_LEVEL_PATCH.value, token),
    )
    return Message(
        f"📦 Repository: {repository}\nSelect the release level",
        (levels, (cancel_button(),)),
    )


def release_confirm(repository: str, level: str, token: str) -> Message:
    return Message(
        f"📦 Repository: {repository}\nLevel: {level}\n\n"
        "Create the release pull request?",
        ((Button("OK", ActionId.RELEASE_OK.value, token), cancel_button()),),
    )


def release_executing(repository: str, level: str) -> Message:
    return Message(f"⏳ Creating {level} release pull request for {repository}...")


def release_completed(repository: str, level: str, pr_url: str) -> Message:
    return Message(
        f"🎉 Completed: {level} release pull request for {repository} was created.\n{pr_url}"
    )
