# src/second_brain/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.dates import make_clock
from ..core.ports import ChatGateway
from ..core.state import AppState
from ..tasks.briefings import send_morning_briefing, send_nightly_review

CommandHandler = Callable[[AppState, list[str], ChatGateway, str], Awaitable[str | None]]

logger = logging.getLogger(__name__)

# Plain-text manual triggers accepted alongside the slash commands.
TEXT_TRIGGERS = {
    "test morning": "/morning",
    "test nightly": "/nightly",
}


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /morning, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        *,
        gateway: ChatGateway,
        channel: str,
    ) -> str | None:
        """
        Handle a string like "/command args" (or a plain-text trigger).
        Returns a reply string, "" when the command already replied, or None if not a command.
        """
        line = TEXT_TRIGGERS.get(line.strip().lower(), line.strip())
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return (await handler(state, args, gateway, channel)) or ""

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


async def cmd_help(state: AppState, args: list[str], gateway: ChatGateway, channel: str) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], gateway: ChatGateway, channel: str) -> str:
    s = state.settings
    return (
        "Status:\n"
        f"  Capture mode: {getattr(s, 'capture_mode', 'agentic')}\n"
        f"  Record store: {state.store_backend}\n"
        f"  Model: {getattr(s, 'llm_model', '?')}\n"
        f"  Reference timezone: {getattr(s, 'reference_timezone', 'UTC')}"
    )


def _briefing_channel(state: AppState, args: list[str], channel: str) -> str:
    # "/morning here" posts into the current channel; otherwise the configured one (or here if unset).
    configured = str(getattr(state.settings, "briefing_channel", "") or "")
    if args and args[0].lower() == "here":
        return channel
    return configured or channel


async def cmd_morning(state: AppState, args: list[str], gateway: ChatGateway, channel: str) -> str | None:
    target = _briefing_channel(state, args, channel)
    logger.info("Manual morning briefing requested (channel=%s)", target)
    sent = await send_morning_briefing(
        store=state.store,
        llm=state.llm,
        gateway=gateway,
        channel=target,
        clock=make_clock(getattr(state.settings, "briefing_timezone", "UTC")),
    )
    if sent is None:
        return "Morning briefing failed. See logs for details."
    return None if target == channel else f"Morning briefing sent to {target}."


async def cmd_nightly(state: AppState, args: list[str], gateway: ChatGateway, channel: str) -> str | None:
    target = _briefing_channel(state, args, channel)
    logger.info("Manual nightly review requested (channel=%s)", target)
    sent = await send_nightly_review(
        store=state.store,
        gateway=gateway,
        channel=target,
        clock=make_clock(getattr(state.settings, "briefing_timezone", "UTC")),
    )
    if sent is None:
        return "Nightly review failed. See logs for details."
    return None if target == channel else f"Nightly review sent to {target}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show capture mode, record store and model.")
registry.register("morning", cmd_morning, help_text="Send the morning briefing now (/morning here).")
registry.register("nightly", cmd_nightly, help_text="Send the nightly review now (/nightly here).")
