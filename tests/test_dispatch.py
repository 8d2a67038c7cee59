from __future__ import annotations

from datetime import timedelta

import pytest

from botmaid.commands import Command
from botmaid.dispatch import build_flags, dispatch
from botmaid.flags import FlagSet
from botmaid.model import Update
from botmaid.store import TELEGRAM_USERS_KEY
from tests.botmaid_fakes import START, make_botmaid, make_update


def _recorder(calls: list[str], name: str, result: bool):
    async def do(update: Update, flags: FlagSet | None) -> bool:
        calls.append(name)
        return result

    return do


@pytest.mark.anyio
async def test_first_handler_returning_true_wins() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "start", False), names=("start",)))
    bm.add_command(Command(do=_recorder(calls, "wildcard", True)))
    bm.add_command(Command(do=_recorder(calls, "after", True), names=("start",)))
    bm.add_command(
        Command(do=_recorder(calls, "early", False), names=("start",), priority=-1)
    )
    bm.commands.sort()

    handled = await bm.handle_update(bot, make_update("/start"))

    assert calls == ["early", "start", "wildcard"]
    assert handled is not None and handled.is_wildcard


@pytest.mark.anyio
async def test_priority_moves_wildcard_behind_named_commands() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "wildcard", True), priority=10))
    bm.add_command(Command(do=_recorder(calls, "help", True), names=("help",)))
    bm.commands.sort()

    await bm.handle_update(bot, make_update("/help"))
    await bm.handle_update(bot, make_update("/other"))

    assert calls == ["help", "wildcard"]


@pytest.mark.anyio
async def test_equal_priority_keeps_registration_order() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "start", True), names=("start",)))
    bm.add_command(Command(do=_recorder(calls, "help", True), names=("help",)))
    bm.add_command(Command(do=_recorder(calls, "wildcard", True)))
    bm.commands.sort()

    await bm.handle_update(bot, make_update("/start"))
    assert calls == ["start"]

    calls.clear()
    await bm.handle_update(bot, make_update("/xyz"))
    assert calls == ["wildcard"]


@pytest.mark.anyio
async def test_wildcard_registered_first_intercepts_named_commands() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "wildcard", True)))
    bm.add_command(Command(do=_recorder(calls, "start", True), names=("start",)))
    bm.commands.sort()

    await bm.handle_update(bot, make_update("/start"))

    assert calls == ["wildcard"]


@pytest.mark.anyio
@pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1)])
async def test_stale_updates_are_never_dispatched(offset: timedelta) -> None:
    bm, bot, adapter = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "any", True)))
    bm.commands.sort()

    handled = await bm.handle_update(bot, make_update("/ping", time=START + offset))

    assert handled is None
    assert calls == []
    assert adapter.pushed == []


@pytest.mark.anyio
async def test_updates_without_message_or_time_are_dropped() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "any", True)))
    bm.commands.sort()

    no_message = make_update("/ping")
    no_message.message = None
    await bm.handle_update(bot, no_message)
    await bm.handle_update(bot, make_update("/ping", time=None))

    assert calls == []


@pytest.mark.anyio
async def test_unsplittable_command_gets_invalid_parameters_reply() -> None:
    bm, bot, adapter = await make_botmaid(builtins=False)
    calls: list[str] = []
    bm.add_command(Command(do=_recorder(calls, "any", True)))
    bm.commands.sort()

    await bm.handle_update(bot, make_update('/echo "unclosed'))
    await bm.handle_update(bot, make_update('just "chatting'))

    assert calls == []
    assert adapter.texts == [
        '@alice, the parameters of the command "echo" is invalid.'
    ]


@pytest.mark.anyio
async def test_telegram_updates_cache_handles_and_replace_dashes() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    seen: list[Update] = []

    async def do(update: Update, flags: FlagSet | None) -> bool:
        seen.append(update)
        return True

    bm.add_command(Command(do=do, names=("echo",)))
    bm.commands.sort()

    await bm.handle_update(bot, make_update("/echo —count 2"))

    assert await bm.store.hash_get(TELEGRAM_USERS_KEY, "alice") == "9"
    message = seen[0].message
    assert message is not None
    assert message.args == ["/echo", "--count", "2"]
    assert message.command == "echo"
    assert seen[0].bot is bot


@pytest.mark.anyio
async def test_non_telegram_updates_are_left_alone() -> None:
    bm, bot, _ = await make_botmaid(builtins=False, platform="QQ")
    seen: list[str] = []

    async def do(update: Update, flags: FlagSet | None) -> bool:
        assert update.message is not None
        seen.append(update.message.text)
        return True

    bm.add_command(Command(do=do))
    bm.commands.sort()

    await bm.handle_update(bot, make_update("a — b"))

    assert seen == ["a — b"]
    assert await bm.store.hash_get(TELEGRAM_USERS_KEY, "alice") is None


@pytest.mark.anyio
async def test_commands_receive_their_menu_flags() -> None:
    bm, bot, _ = await make_botmaid(builtins=False)
    received: list[FlagSet | None] = []

    async def do(update: Update, flags: FlagSet | None) -> bool:
        received.append(flags)
        return False

    def set_flag(flags: FlagSet) -> None:
        flags.add("--times", type=int, default=1)

    bm.add_command(Command(do=do, names=("roll",), menu="dice", set_flag=set_flag))
    bm.add_command(Command(do=do, names=("roll",)))
    bm.commands.sort()

    await bm.handle_update(bot, make_update("/roll --times 3 d6"))

    dice, plain = received
    assert dice is not None
    assert dice.times == 3
    assert dice.args == ["/roll", "d6"]
    assert plain is None


async def _noop(update: Update, flags: FlagSet | None) -> bool:
    return False


def test_build_flags_shares_one_set_per_menu() -> None:
    def verbose(flags: FlagSet) -> None:
        flags.add("-v", action="store_true")

    def count(flags: FlagSet) -> None:
        flags.add("-c", type=int)

    commands = [
        Command(do=_noop, names=("a",), menu="m", set_flag=verbose),
        Command(do=_noop, names=("b",), menu="m", set_flag=count),
        Command(do=_noop, names=("c",), menu="other"),
        Command(do=_noop, names=("d",)),
    ]

    flags = build_flags(commands, ["/a", "-v", "-c", "2"])

    assert sorted(flags) == ["m", "other"]
    assert flags["m"].get("v") is True
    assert flags["m"].get("c") == 2
    assert flags["other"].args == ["/a", "2"]


@pytest.mark.anyio
async def test_dispatch_without_message_returns_none() -> None:
    assert await dispatch([Command(do=_noop)], Update()) is None
