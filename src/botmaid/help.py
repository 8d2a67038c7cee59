"""Help text derived from the live command registry.

Nothing here is cached: each request walks the registry again and filters it
by the requester's permissions. The arity/permission pre-check in
`help_fallback` only decides what to advertise; handlers still enforce their
own rules.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from .commands import Command
from .flags import FlagSet, positionals
from .model import Update

if TYPE_CHECKING:
    from .botmaid import BotMaid

HELP = "help"


def _visible(command: Command, *, master: bool) -> bool:
    return master or not command.master


def _join_or(items: Sequence[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return f"{', '.join(items[:-1])} or {items[-1]}"


def prefix_usage(prefixes: Sequence[str]) -> str:
    first, rest = prefixes[0], list(prefixes[1:])
    if not rest:
        return first
    return f"{first}({_join_or(rest)})"


def _with_at(bm: BotMaid, update: Update, lines: Sequence[str]) -> str:
    return "\n".join([bm.at(update), *lines]).strip()


async def menu_listing(bm: BotMaid, update: Update) -> str:
    master = await bm.is_master(update)
    name = update.bot.self_user.nick_name if update.bot is not None else ""
    lines = [
        bm.words.format("selfIntro", name=name, usage=prefix_usage(bm.prefixes)),
        "",
    ]
    for menu in sorted(hm.menu for hm in bm.help_menus):
        if not any(
            _visible(command, master=master) for command in bm.commands.in_menu(menu)
        ):
            continue
        help_menu = next(hm for hm in bm.help_menus if hm.matches(menu))
        lines.append(f"{menu} - {help_menu.help}")
    return _with_at(bm, update, lines)


async def push_help(
    bm: BotMaid, token: str, update: Update, *, show_undef: bool
) -> bool:
    """Reply with help for a menu or command name; False if nothing was sent."""
    master = await bm.is_master(update)

    for help_menu in bm.help_menus:
        if not help_menu.matches(token):
            continue
        visible = [
            command
            for command in bm.commands.in_menu(help_menu.menu)
            if _visible(command, master=master)
        ]
        # A menu with nothing visible is not revealed to this requester.
        if not visible:
            break
        lines = [
            f"{command.names[0]}{command.help}"
            for command in visible
            if command.names and command.help
        ]
        if lines:
            await bm.reply(update, _with_at(bm, update, lines))
        else:
            await bm.reply(
                update, bm.words.format("noHelpText", at=bm.at(update), command=token)
            )
        return True

    known = False
    lines = []
    for command in bm.commands.named(token):
        if not _visible(command, master=master):
            continue
        known = True
        if command.help:
            lines.append(f"{token}{command.help}")

    if known:
        if lines:
            await bm.reply(update, _with_at(bm, update, lines))
        else:
            await bm.reply(
                update, bm.words.format("noHelpText", at=bm.at(update), command=token)
            )
        return True

    if not show_undef:
        return False
    await bm.reply(
        update, bm.words.format("undefCommand", at=bm.at(update), command=token)
    )
    return True


async def help_command(bm: BotMaid, update: Update, flags: FlagSet | None) -> bool:
    """`help`, `help X` and `X help`."""
    assert update.message is not None
    args = flags.args if flags is not None else positionals(update.message.args)
    if bm.is_command(update, HELP) and len(args) == 1:
        await bm.reply(update, await menu_listing(bm, update))
        return True
    if bm.is_command(update, HELP) and len(args) == 2:
        token = args[1]
    elif bm.is_command(update) and len(args) == 2 and args[1] == HELP:
        token = update.message.command
    else:
        return False
    await push_help(bm, token, update, show_undef=True)
    return True


async def help_fallback(bm: BotMaid, update: Update, flags: FlagSet | None) -> bool:
    """Last resort for a prefixed command nobody handled."""
    if not bm.is_command(update):
        return False
    assert update.message is not None
    args = flags.args if flags is not None else positionals(update.message.args)
    command_name = update.message.command
    master = await bm.is_master(update)
    for command in bm.commands.named(command_name):
        if not command.accepts_arity(args):
            continue
        if command.master and not master:
            await bm.reply(
                update,
                bm.words.format("noPermission", at=bm.at(update), command=command_name),
            )
            return True
    return await push_help(bm, command_name, update, show_undef=False)
