from __future__ import annotations

import argparse
from collections.abc import Sequence
from typing import Any, NoReturn


class FlagError(ValueError):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise FlagError(message)

    def exit(self, status: int = 0, message: str | None = None) -> NoReturn:
        raise FlagError(message or f"exit {status}")


class FlagSet:
    """Flags of one menu, parsed from a message's tokens.

    Parsing never raises: values parsed before a bad token are kept and the
    failure is recorded in `error`. `args` holds the positional tokens
    (the command token included), like a shell's argv.
    """

    def __init__(self, menu: str) -> None:
        self.menu = menu
        self._parser = _Parser(
            prog=menu,
            add_help=False,
            allow_abbrev=False,
            exit_on_error=False,
            conflict_handler="resolve",
        )
        self.values = argparse.Namespace()
        self.args: list[str] = []
        self.error: str | None = None

    def add(self, *names: str, **kwargs: Any) -> None:
        self._parser.add_argument(*names, **kwargs)

    def get(self, name: str, default: Any = None) -> Any:
        return getattr(self.values, name, default)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return getattr(self.__dict__["values"], name)
        except (KeyError, AttributeError):
            raise AttributeError(name) from None

    def usage(self) -> str:
        return self._parser.format_help().strip()

    def parse(self, tokens: Sequence[str]) -> FlagSet:
        self.values = argparse.Namespace()
        try:
            _, extras = self._parser.parse_known_args(list(tokens), self.values)
        except (FlagError, argparse.ArgumentError) as exc:
            self.error = str(exc)
            self.args = positionals(tokens)
            return self
        self.args = positionals(extras)
        return self


def positionals(tokens: Sequence[str]) -> list[str]:
    args: list[str] = []
    literal = False
    for token in tokens:
        if literal:
            args.append(token)
        elif token == "--":
            literal = True
        elif token.startswith("-") and len(token) > 1 and not _is_number(token):
            continue
        else:
            args.append(token)
    return args


def _is_number(token: str) -> bool:
    try:
        float(token)
    except ValueError:
        return False
    return True
