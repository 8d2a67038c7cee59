"""Command descriptors and the ordered registry the dispatcher walks."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from .flags import FlagSet
from .model import Update

Handler = Callable[[Update, FlagSet | None], Awaitable[bool]]
SetFlag = Callable[[FlagSet], None]


@dataclass(frozen=True, slots=True)
class Command:
    """A registered handler.

    Empty `names` makes the command a wildcard that sees every update. An
    empty `menu` means no flag parsing and no help entry.
    """

    do: Handler
    names: tuple[str, ...] = ()
    menu: str = ""
    help: str = ""
    master: bool = False
    args_min_len: int = 0
    args_max_len: int = 0
    set_flag: SetFlag | None = None
    priority: int = 0

    @property
    def is_wildcard(self) -> bool:
        return not self.names

    def matches(self, command: str) -> bool:
        return self.is_wildcard or command in self.names

    def accepts_arity(self, args: Sequence[str]) -> bool:
        count = len(args)
        if self.args_min_len and count < self.args_min_len:
            return False
        if self.args_max_len and count > self.args_max_len:
            return False
        return True


@dataclass(frozen=True, slots=True)
class HelpMenu:
    menu: str
    help: str
    names: tuple[str, ...] = ()

    def matches(self, token: str) -> bool:
        return token == self.menu or token in self.names


@dataclass(slots=True)
class CommandRegistry:
    commands: list[Command] = field(default_factory=list)
    sealed: bool = False

    def add(self, command: Command) -> Command:
        if self.sealed:
            raise RuntimeError("command registry is sealed after start")
        self.commands.append(command)
        return command

    def extend(self, commands: Iterable[Command]) -> None:
        for command in commands:
            self.add(command)

    def sort(self) -> None:
        """Stable-sort by priority once; ties keep registration order."""
        if self.sealed:
            return
        self.commands.sort(key=lambda command: command.priority)
        self.sealed = True

    def __iter__(self) -> Iterator[Command]:
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)

    def menus(self) -> list[str]:
        seen: dict[str, None] = {}
        for command in self.commands:
            if command.menu:
                seen.setdefault(command.menu, None)
        return list(seen)

    def in_menu(self, menu: str) -> list[Command]:
        return [command for command in self.commands if command.menu == menu]

    def named(self, name: str) -> list[Command]:
        return [command for command in self.commands if name in command.names]


def extract_command(
    args: Sequence[str],
    prefixes: Sequence[str],
    *,
    self_user_name: str = "",
) -> str:
    """Command name from the first token, or "" if it carries no prefix.

    A `/cmd@other_bot` form addressed to another bot yields "".
    """
    if not args:
        return ""
    token = args[0]
    for prefix in sorted(prefixes, key=len, reverse=True):
        if not token.startswith(prefix) or len(token) == len(prefix):
            continue
        name = token[len(prefix) :]
        name, _, target = name.partition("@")
        if target and self_user_name and target.lower() != self_user_name.lower():
            return ""
        return name
    return ""
