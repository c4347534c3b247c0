"""Bot orchestration."""
import logging
from telegram import BotCommand, Update
from telegram.ext import Application, ApplicationBuilder, ContextTypes, MessageHandler, filters
from typing import List, TYPE_CHECKING

if TYPE_CHECKING:
    from plugins import Plugin

logger = logging.getLogger(__name__)

UNKNOWN_COMMAND_MESSAGE = "❓ Unknown command. Try /help for available commands."


class MovieBot:
    def __init__(self, token: str):
        self.token = token
        self.application: Application | None = None
        self._plugins: List['Plugin'] = []

    def register_plugin(self, plugin: 'Plugin') -> None:
        self._plugins.append(plugin)
        logger.info(f"Registered plugin: {plugin.name}")

    def setup(self) -> Application:
        self.application = (
            ApplicationBuilder()
            .token(self.token)
            .concurrent_updates(True)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        for plugin in self._plugins:
            plugin.register(self.application)
            logger.info(f"Plugin '{plugin.name}' handlers registered")

        # Registered last so plugin commands in the same group win
        self.application.add_handler(MessageHandler(filters.COMMAND, self.unknown_command))
        self.application.add_error_handler(self.on_error)

        return self.application

    async def _post_init(self, application: Application) -> None:
        for plugin in self._plugins:
            await plugin.startup(application)
        await self._setup_commands(application)

    async def _post_shutdown(self, application: Application) -> None:
        for plugin in self._plugins:
            try:
                await plugin.shutdown(application)
            except Exception as e:
                logger.error(f"Plugin '{plugin.name}' failed to shut down: {e}")

    async def _setup_commands(self, application: Application) -> None:
        commands = []
        for plugin in self._plugins:
            for cmd, description in plugin.commands:
                commands.append(BotCommand(cmd, description))

        if commands:
            await application.bot.set_my_commands(commands)
            logger.info(f"Registered {len(commands)} bot commands")

    async def unknown_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message:
            await update.message.reply_text(UNKNOWN_COMMAND_MESSAGE)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        # The update is dropped, the bot keeps running
        logger.error(f"Unhandled error while processing update {update}", exc_info=context.error)

    def run_polling(self) -> None:
        if not self.application:
            self.setup()
        logger.info("Starting bot in polling mode...")
        self.application.run_polling(allowed_updates=Update.ALL_TYPES)  # type: ignore[union-attr]

    def run_webhook(self, listen: str, port: int, url_path: str, webhook_url: str) -> None:
        if not self.application:
            self.setup()
        logger.info(f"Starting bot in webhook mode on port {port}...")
        self.application.run_webhook(listen=listen, port=port, url_path=url_path, webhook_url=webhook_url)  # type: ignore[union-attr]
