from __future__ import annotations

import re
from functools import partial
from typing import TYPE_CHECKING

from .commands import Command, HelpMenu
from .flags import FlagSet, positionals
from .help import help_command, help_fallback
from .logging import get_logger
from .model import Update
from .store import TELEGRAM_USERS_KEY, master_key
from .telegram import PLATFORM as TELEGRAM

if TYPE_CHECKING:
    from .botmaid import BotMaid

logger = get_logger(__name__)

HELP_PRIORITY = -1000
FALLBACK_PRIORITY = 1000

_TG_ANCHOR_RE = re.compile(r"tg://user\?id=(\d+)")
_CQ_AT_RE = re.compile(r"^\[CQ:at,qq=(\d+)\]$")


def _master_flags(flags: FlagSet) -> None:
    flags.add("-r", "--remove", action="store_true", default=False)


async def resolve_user_id(bm: BotMaid, update: Update, token: str) -> int | None:
    """Numeric id from a plain id, a platform mention, or a cached handle."""
    token = token.strip()
    if token.isdigit():
        return int(token)
    if match := _CQ_AT_RE.match(token):
        return int(match.group(1))
    if match := _TG_ANCHOR_RE.search(token):
        return int(match.group(1))
    if (
        token.startswith("@")
        and update.bot is not None
        and update.bot.platform == TELEGRAM
    ):
        cached = await bm.store.hash_get(TELEGRAM_USERS_KEY, token[1:])
        if cached is not None and cached.isdigit():
            return int(cached)
    return None


async def master_command(
    bm: BotMaid, command: Command, update: Update, flags: FlagSet | None
) -> bool:
    """`master [-r] USER` registers or unregisters a master of this bot."""
    assert update.message is not None and update.bot is not None
    args = flags.args if flags is not None else positionals(update.message.args)
    name = update.message.command
    if not await bm.is_master(update):
        await bm.reply(
            update, bm.words.format("noPermission", at=bm.at(update), command=name)
        )
        return True
    if not command.accepts_arity(args) or (flags is not None and flags.error):
        await bm.reply(
            update, bm.words.format("invalidParameters", at=bm.at(update), command=name)
        )
        return True

    token = args[1]
    user_id = await resolve_user_id(bm, update, token)
    if user_id is None:
        await bm.reply(
            update, bm.words.format("invalidUser", at=bm.at(update), user=token)
        )
        return True

    key = master_key(update.bot.id)
    if flags is not None and flags.get("remove", False):
        await bm.store.remove_from_set(key, user_id)
        logger.info("master.removed", bot=update.bot.id, user_id=user_id)
        words = "unregMaster"
    else:
        await bm.store.add_to_set(key, user_id)
        logger.info("master.added", bot=update.bot.id, user_id=user_id)
        words = "regMaster"
    await bm.reply(update, bm.words.format(words, at=bm.at(update), user=token))
    return True


def install_builtins(bm: BotMaid) -> None:
    bm.add_command(Command(do=partial(help_command, bm), priority=HELP_PRIORITY))

    master = Command(
        do=lambda update, flags: master_command(bm, master, update, flags),
        names=("master",),
        menu="master",
        help=" [-r|--remove] USER - register (or with -r unregister) a master",
        master=True,
        args_min_len=2,
        args_max_len=2,
        set_flag=_master_flags,
    )
    bm.add_command(master)
    bm.add_help_menu(HelpMenu("master", "manage the masters of this bot"))

    bm.add_command(Command(do=partial(help_fallback, bm), priority=FALLBACK_PRIORITY))
