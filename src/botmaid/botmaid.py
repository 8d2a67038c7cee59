from __future__ import annotations

import shlex
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone

import anyio
from anyio.abc import ObjectReceiveStream, TaskGroup

from .adapter import Adapter, AdapterError, PullConfig
from .builtins import install_builtins
from .commands import Command, CommandRegistry, HelpMenu, extract_command
from .config import ConfigError
from .dispatch import dispatch
from .logging import bind_bot_context, get_logger
from .model import DELETE, Bot, Update, User, outbound
from .qq import QQAdapter
from .settings import BotMaidSettings, BotSettings, QQBotSettings, TelegramBotSettings
from .store import TELEGRAM_USERS_KEY, MemoryStore, RedisStore, Store, master_key
from .telegram import PLATFORM as TELEGRAM
from .telegram import TelegramAdapter
from .words import Words

logger = get_logger(__name__)

IDENTITY_ATTEMPTS = 5
IDENTITY_RETRY_S = 3.0


def build_adapter(settings: BotSettings) -> Adapter:
    if isinstance(settings, TelegramBotSettings):
        return TelegramAdapter(settings.token)
    if isinstance(settings, QQBotSettings):
        return QQAdapter(
            settings.api_endpoint,
            settings.websocket_endpoint,
            access_token=settings.access_token,
        )
    raise ConfigError(f"Unknown bot type {settings!r}")


def build_store(settings: BotMaidSettings) -> Store:
    if settings.redis is None:
        logger.warning("store.in_memory", reason="no [redis] table configured")
        return MemoryStore()
    return RedisStore.connect(
        settings.redis.address,
        password=settings.redis.password,
        database=settings.redis.database,
    )


def format_line(update: Update) -> str:
    text = update.message.text if update.message is not None else ""
    if update.user is not None:
        text = f"{update.user.nick_name}: {text}"
    if update.chat is not None and update.chat.title:
        text = f"[{update.chat.title}]{text}"
    return text


class BotMaid:
    """Owns the bots, the command registry and the store for one process."""

    def __init__(
        self,
        settings: BotMaidSettings,
        *,
        store: Store,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.words = Words(settings.words)
        self.prefixes: tuple[str, ...] = tuple(settings.command.prefix)
        self.log_enabled = settings.log.enabled
        self.pull_config = PullConfig(
            limit=settings.pull.limit,
            timeout=settings.pull.timeout,
            retry_waiting_time=settings.pull.retry_waiting_time,
        )
        self.bots: dict[str, Bot] = {}
        self.commands = CommandRegistry()
        self.help_menus: list[HelpMenu] = []
        self._sleep = sleep
        self._resp_time = now()

    @property
    def resp_time(self) -> datetime:
        """Updates timestamped at or before this instant are never handled."""
        return self._resp_time

    def add_command(self, command: Command) -> Command:
        return self.commands.add(command)

    def add_help_menu(self, menu: HelpMenu) -> HelpMenu:
        if self.commands.sealed:
            raise RuntimeError("help menus are read-only after start")
        self.help_menus.append(menu)
        return menu

    async def add_bot(self, bot_id: str, api: Adapter, *, masters: Sequence[int] = ()) -> Bot:
        self_user = await self._fetch_identity(bot_id, api)
        bot = Bot(id=bot_id, self_user=self_user, api=api, botmaid=self)
        if masters:
            await self.store.add_to_set(master_key(bot_id), *masters)
        self.bots[bot_id] = bot
        return bot

    async def _fetch_identity(self, bot_id: str, api: Adapter) -> User:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await api.get_me()
            except AdapterError as exc:
                if attempt >= IDENTITY_ATTEMPTS:
                    raise ConfigError(
                        f"Could not fetch the identity of bot {bot_id!r}: {exc}"
                    ) from exc
                if self.log_enabled:
                    logger.warning(
                        "bot.identity_failed",
                        bot=bot_id,
                        attempt=attempt,
                        error=str(exc),
                        retry_in=IDENTITY_RETRY_S,
                    )
                await self._sleep(IDENTITY_RETRY_S)

    async def start(self) -> None:
        """Run every bot until the surrounding scope is cancelled."""
        self.commands.sort()
        async with anyio.create_task_group() as tg:
            for bot in self.bots.values():
                tg.start_soon(self._run_bot, tg, bot)

    async def _run_bot(self, tg: TaskGroup, bot: Bot) -> None:
        bind_bot_context(bot=bot.id, platform=bot.platform)
        streams = bot.api.pull(tg, self.pull_config)
        if self.log_enabled:
            tg.start_soon(self._drain_errors, bot, streams.errors)
            logger.info(
                "bot.loaded",
                nick=bot.self_user.nick_name,
                user_name=bot.self_user.user_name,
            )
        else:
            await streams.errors.aclose()
        async with streams.updates:
            async for update in streams.updates:
                tg.start_soon(self._run_update, bot, update)

    async def _drain_errors(
        self, bot: Bot, errors: ObjectReceiveStream[Exception]
    ) -> None:
        async with errors:
            async for exc in errors:
                logger.error(
                    "bot.pull_failed",
                    bot=bot.id,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )

    async def _run_update(self, bot: Bot, update: Update) -> None:
        try:
            await self.handle_update(bot, update)
        except Exception:
            logger.exception("update.failed", bot=bot.id, update_id=update.id)

    async def handle_update(self, bot: Bot, update: Update) -> Command | None:
        message = update.message
        if message is None or update.time is None or update.time <= self._resp_time:
            return None

        update.bot = bot

        if bot.platform == TELEGRAM:
            if update.user is not None and update.user.user_name:
                await self.store.hash_set(
                    TELEGRAM_USERS_KEY, update.user.user_name, update.user.id
                )
            message.text = message.text.replace("—", "--")

        if self.log_enabled:
            logger.info("message.received", bot=bot.id, line=format_line(update))

        try:
            message.args = shlex.split(message.text)
        except ValueError:
            message.args = []
            message.command = self.extract_command(bot, message.text.split())
            if message.command:
                await self.reply(
                    update,
                    self.words.format(
                        "invalidParameters", at=self.at(update), command=message.command
                    ),
                )
            return None

        message.command = self.extract_command(bot, message.args)
        return await dispatch(self.commands.commands, update)

    def extract_command(self, bot: Bot, args: list[str]) -> str:
        return extract_command(
            args, self.prefixes, self_user_name=bot.self_user.user_name
        )

    def is_command(self, update: Update, *names: str) -> bool:
        if update.message is None or not update.message.command:
            return False
        return not names or update.message.command in names

    async def is_master(self, update: Update) -> bool:
        if update.user is None or update.bot is None:
            return False
        return await self.store.is_member(master_key(update.bot.id), update.user.id)

    def at(self, update: Update) -> str:
        if update.user is None or update.bot is None:
            return ""
        return update.bot.api.mention(update.user)

    async def reply(
        self,
        update: Update,
        text: str = "",
        *,
        image: str = "",
        audio: str = "",
    ) -> Update | None:
        if update.bot is None:
            raise ValueError("cannot reply to an update without a bot")
        try:
            return await update.bot.api.push(
                outbound(update, text, image=image, audio=audio)
            )
        except AdapterError as exc:
            logger.error(
                "reply.failed",
                bot=update.bot.id,
                method=exc.method,
                error=str(exc),
            )
            return None

    async def delete(self, update: Update) -> None:
        """Delete the message carried by `update`, inbound or returned by `reply`."""
        if update.bot is None:
            raise ValueError("cannot delete an update without a bot")
        message_id = update.id
        if update.message is not None and update.message.id:
            message_id = update.message.id
        await update.bot.api.push(
            Update(id=message_id, type=DELETE, chat=update.chat, bot=update.bot)
        )

    async def close(self) -> None:
        for bot in self.bots.values():
            await bot.api.close()
        await self.store.close()


async def create_botmaid(
    settings: BotMaidSettings,
    *,
    store: Store | None = None,
) -> BotMaid:
    bm = BotMaid(settings, store=store or build_store(settings))
    await bm.store.ping()
    install_builtins(bm)
    for bot_id, bot_settings in settings.bots.items():
        api = build_adapter(bot_settings)
        bot = await bm.add_bot(bot_id, api, masters=list(bot_settings.master))
        logger.info(
            "bot.configured",
            bot=bot_id,
            platform=api.platform_name,
            nick=bot.self_user.nick_name,
        )
    return bm
