"""Assistant plugin for /ask, /stats and /clear."""
from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes
from plugins import Plugin
from core.assistant import Assistant, DISABLED_MESSAGE, MIN_PROMPT_LENGTH, PROMPT_TOO_SHORT_MESSAGE
import logging

logger = logging.getLogger(__name__)


class AssistantPlugin(Plugin):
    def __init__(self, assistant: Assistant):
        self.assistant = assistant

    @property
    def name(self) -> str:
        return "assistant"

    @property
    def commands(self):
        return [
            ("ask", "Talk to the AI"),
            ("stats", "View your usage statistics"),
            ("clear", "Clear conversation history"),
        ]

    def register(self, app: Application) -> None:
        app.add_handler(CommandHandler("ask", self.ask))
        app.add_handler(CommandHandler("stats", self.stats))
        app.add_handler(CommandHandler("clear", self.clear))

    async def ask(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_user:
            return

        if not self.assistant.available:
            await update.message.reply_text(DISABLED_MESSAGE)
            return

        prompt = " ".join(context.args or []).strip()
        if len(prompt) < MIN_PROMPT_LENGTH:
            await update.message.reply_text(PROMPT_TOO_SHORT_MESSAGE)
            return

        progress_msg = await update.message.reply_text("🤖 Thinking...")
        reply = await self.assistant.ask(update.effective_user.id, prompt)

        try:
            await progress_msg.edit_text(reply)
        except TelegramError as e:
            logger.warning(f"Failed to edit message: {e}")
            await update.message.reply_text(reply)

    async def stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_user:
            return
        await update.message.reply_text(
            self.assistant.stats(update.effective_user.id),
            parse_mode="Markdown"
        )

    async def clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_user:
            return
        self.assistant.clear(update.effective_user.id)
        await update.message.reply_text("🗑️ Conversation history cleared!")
        logger.info(f"Conversation cleared for user {update.effective_user.id}")
