"""Reply templates. Each may be overridden from the `[words]` config table."""

from __future__ import annotations

from collections.abc import Mapping

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_WORDS: dict[str, str] = {
    "selfIntro": (
        "{name} is a bot.\n\n"
        "Usage:\n\n"
        "{usage}*COMMAND* [ARGUMENTS]\n\n"
        'Use "help [COMMAND]" for more information about a command.\n\n'
        "The commands are:"
    ),
    "undefCommand": (
        '{at}, the command "{command}" is unknown, please retry after checking '
        'the spelling or the "help" command.'
    ),
    "noPermission": '{at}, you don\'t have permission to use "{command}".',
    "invalidParameters": '{at}, the parameters of the command "{command}" is invalid.',
    "noHelpText": '{at}, the command "{command}" has no help text.',
    "invalidUser": '{at}, the user "{user}" is invalid or not exist.',
    "regMaster": "{at}, the user {user} has been registered as master.",
    "unregMaster": "{at}, the master {user} has been unregistered.",
}


class Words:
    def __init__(self, overrides: Mapping[str, str] | None = None) -> None:
        self._words = dict(DEFAULT_WORDS)
        for key, value in (overrides or {}).items():
            if key not in DEFAULT_WORDS:
                logger.warning("words.unknown_key", key=key)
            self._words[key] = value

    def __getitem__(self, key: str) -> str:
        return self._words[key]

    def format(self, key: str, **fields: object) -> str:
        return self._words[key].format(**fields)
