"""
Stagebot - Chat Control Surface for Live-Event Production

Stateless Telegram bot that lets operators drive the production-control
service from a chat:
- Track listing and automation toggles
- Scene advance buttons
- Release pull requests through a multi-step button workflow

Workflow state is carried in the buttons themselves; the bot keeps no sessions.
"""

__version__ = "0.4.0"
