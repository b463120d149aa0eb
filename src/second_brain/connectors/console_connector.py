# src/second_brain/connectors/console_connector.py

from __future__ import annotations

import asyncio
import itertools
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.models import InboundMessage
from ..core.state import AppState

logger = logging.getLogger(__name__)

CONSOLE_CHANNEL = "console"
CONSOLE_USER = "local"

USAGE_REPLY = "Usage: /reply <thread_key> <text>"


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleGateway:
    """
    ChatGateway that prints to the terminal.

    Message ids are sequential ("out1", "out2", ...). Edits are printed as new
    lines tagged with the id they replace.
    """

    def __init__(self, app_name: str = "brain") -> None:
        self._ids = itertools.count(1)
        self._app_name = app_name

    async def send_message(self, channel: str, text: str, thread_key: str | None = None) -> str:
        message_id = f"out{next(self._ids)}"
        thread = f" (thread {thread_key})" if thread_key else ""
        _print_ts(f"<<< {self._app_name} [{message_id}]{thread}: {text}")
        return message_id

    async def update_message(self, channel: str, message_id: str, text: str) -> None:
        _print_ts(f"<<< {self._app_name} [{message_id} edited]: {text}")


def parse_console_line(line: str, message_id: str) -> InboundMessage | str:
    """
    Turn one console line into an inbound event.

    `/reply <thread_key> <text>` simulates a reply in a thread; a usage string is
    returned when it is malformed.
    """
    if line.lower().startswith("/reply"):
        parts = line.split(maxsplit=2)
        if len(parts) < 3 or not parts[2].strip():
            return USAGE_REPLY
        return InboundMessage(
            channel=CONSOLE_CHANNEL,
            user=CONSOLE_USER,
            text=parts[2].strip(),
            message_id=message_id,
            thread_key=parts[1],
        )
    return InboundMessage(channel=CONSOLE_CHANNEL, user=CONSOLE_USER, text=line, message_id=message_id)


async def run_console_loop(state: AppState, gateway: ConsoleGateway | None = None) -> None:
    app_name = str(getattr(state.settings, "app_name", "brain"))
    gateway = gateway or ConsoleGateway(app_name)
    orchestrator = state.orchestrator_for(gateway)
    inbound_ids = itertools.count(1)

    logger.info("Console connector started (capture_mode=%s).", orchestrator.mode)
    _print_ts("[CONSOLE] Type your thoughts. Use /help for commands, /reply <id> <text> to reply "
              "in a thread, /exit to quit.\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> You: ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        message_id = f"in{next(inbound_ids)}"
        _rewrite_prev_line(f"[{_ts_local()}] >>> You [{message_id}]: {user_input}")

        if not user_input.lower().startswith("/reply"):
            try:
                cmd_response = await command_registry.handle(
                    state, user_input, gateway=gateway, channel=CONSOLE_CHANNEL
                )
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is not None:
                if cmd_response:
                    _print_ts(cmd_response)
                continue

        event = parse_console_line(user_input, message_id)
        if isinstance(event, str):
            _print_ts(event)
            continue

        await orchestrator.handle(event)

    logger.info("Console connector finished.")
