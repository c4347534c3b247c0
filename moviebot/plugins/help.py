"""Help plugin."""
from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes
from plugins import Plugin
import logging

logger = logging.getLogger(__name__)

HELP_TEXT = """🎬 *MovieBot Commands*:
• /search <movie or series> – find files
• /search <query> | <tag> – only keep files whose caption mentions the tag
• /next, /prev – browse the result pages
• /ask <your question> – talk to the AI (if enabled)
• /stats – view your usage statistics
• /clear – clear conversation history"""


class HelpPlugin(Plugin):
    @property
    def name(self) -> str:
        return "help"

    @property
    def commands(self):
        return [("help", "Show available commands")]

    def register(self, app: Application) -> None:
        app.add_handler(CommandHandler("help", self.help_command))
        app.add_handler(CommandHandler("start", self.help_command))

    async def help_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return

        await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")
        logger.info(f"Help shown to user {update.effective_user.id if update.effective_user else 'unknown'}")
