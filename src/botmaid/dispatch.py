from __future__ import annotations

from collections.abc import Iterable, Sequence

from .commands import Command
from .flags import FlagSet
from .logging import get_logger
from .model import Update

logger = get_logger(__name__)


def build_flags(commands: Iterable[Command], args: Sequence[str]) -> dict[str, FlagSet]:
    """One fresh flag set per menu, declared by every command in it, then parsed."""
    flags: dict[str, FlagSet] = {}
    for command in commands:
        if not command.menu:
            continue
        flag_set = flags.get(command.menu)
        if flag_set is None:
            flag_set = flags[command.menu] = FlagSet(command.menu)
        if command.set_flag is not None:
            command.set_flag(flag_set)
    for flag_set in flags.values():
        flag_set.parse(args)
        if flag_set.error is not None:
            logger.debug("dispatch.flag_error", menu=flag_set.menu, error=flag_set.error)
    return flags


async def dispatch(commands: Sequence[Command], update: Update) -> Command | None:
    """Run eligible commands in order until one reports the update handled."""
    message = update.message
    if message is None:
        return None
    message.flags = build_flags(commands, message.args)
    for command in commands:
        if not command.matches(message.command):
            continue
        flags = message.flags.get(command.menu) if command.menu else None
        if await command.do(update, flags):
            logger.debug(
                "dispatch.handled",
                command=message.command,
                names=command.names,
                menu=command.menu,
            )
            return command
    return None
