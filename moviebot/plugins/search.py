"""Search plugin: /search, /next, /prev and the inline page buttons."""
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, LinkPreviewOptions, Update
from telegram.constants import ChatType, MessageLimit
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes
from typing import Optional, Tuple
import logging

from plugins import Plugin
from core.pagination import (
    CALLBACK_PREFIX,
    Direction,
    NavigationOutcome,
    PaginationSession,
    Paginator,
    decode_callback,
    encode_callback,
)
from core.search import (
    MAX_SEARCH_RESULTS,
    MIN_RESULT_SIZE_BYTES,
    SearchProvider,
    SearchProviderError,
    SearchRegistry,
    SearchSuperseded,
    TooManyResults,
    collect_results,
)

logger = logging.getLogger(__name__)

SEARCHING_MESSAGE = "Searching for the file, please be patient for a few minutes..."
NO_RESULTS_MESSAGE = "😕 No results found. Please wait for assistance."
SEARCH_FAILED_MESSAGE = "😓 The search failed. Please try again later."
SEARCH_UNAVAILABLE_MESSAGE = "🔍 Search is not configured on this bot."
EXPIRED_MESSAGE = "⌛ This search session has expired. Run /search again."
NO_MORE_PAGES_MESSAGE = "📄 There are no more pages in that direction."
NOT_YOUR_SESSION_MESSAGE = "These results belong to someone else's search."
NAVIGATION_FAILED_MESSAGE = "😓 Could not show that page. Please try again."
TOO_MANY_RESULTS_MESSAGE = (
    "Too many results (more than {limit} found). Please be more specific!\n\n"
    "Try adding:\n• Year (e.g., 2023)\n• Season (e.g., s01)\n• Episode (e.g., e01)\n\n"
    "Don't use season and episode together."
)
NO_PREVIEW = LinkPreviewOptions(is_disabled=True)


def parse_query(text: str) -> tuple[str, Optional[str]]:
    """Split ``query | tag`` into the query and an optional caption filter."""
    query, _, tag = text.partition("|")
    return query.strip(), tag.strip() or None


class SearchPlugin(Plugin):
    def __init__(
        self,
        provider: Optional[SearchProvider],
        paginator: Paginator,
        registry: Optional[SearchRegistry] = None,
        min_size: int = MIN_RESULT_SIZE_BYTES,
        max_results: int = MAX_SEARCH_RESULTS,
    ):
        self.provider = provider
        self.paginator = paginator
        self.registry = registry or SearchRegistry()
        self.min_size = min_size
        self.max_results = max_results

    @property
    def name(self) -> str:
        return "search"

    @property
    def commands(self):
        return [
            ("search", "Find movie or series files"),
            ("next", "Next page of results"),
            ("prev", "Previous page of results"),
        ]

    def register(self, app: Application) -> None:
        app.add_handler(CommandHandler("search", self.search))
        app.add_handler(CommandHandler("next", self.next_page))
        app.add_handler(CommandHandler("prev", self.prev_page))
        app.add_handler(CallbackQueryHandler(self.navigate, pattern=f"^{CALLBACK_PREFIX}:"))

    async def startup(self, app: Application) -> None:
        if self.provider:
            await self.provider.connect()

    async def shutdown(self, app: Application) -> None:
        if self.provider:
            await self.provider.disconnect()

    def render_page(self, session: PaginationSession) -> str:
        footer = self.paginator.footer(session)
        if session.total_pages > 1:
            footer += "\nUse /next or /prev to see more results."
        items = "\n\n".join(item.render() for item in self.paginator.page_items(session))
        budget = MessageLimit.MAX_TEXT_LENGTH - len(footer) - 2
        if len(items) > budget:
            items = items[:budget - 1] + "…"
        return f"{items}\n\n{footer}"

    def keyboard(self, user_id: int, session: PaginationSession) -> Optional[InlineKeyboardMarkup]:
        buttons = []
        if session.has_prev:
            buttons.append(InlineKeyboardButton(
                "◀️ Prev", callback_data=encode_callback(user_id, session.session_id, Direction.PREV, session.current_page)
            ))
        if session.has_next:
            buttons.append(InlineKeyboardButton(
                "Next ▶️", callback_data=encode_callback(user_id, session.session_id, Direction.NEXT, session.current_page)
            ))
        return InlineKeyboardMarkup([buttons]) if buttons else None

    async def search(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_user or not update.effective_chat:
            return
        if update.effective_chat.type != ChatType.PRIVATE:
            return

        if self.provider is None:
            await update.message.reply_text(SEARCH_UNAVAILABLE_MESSAGE)
            return

        query, tag = parse_query(" ".join(context.args or []))
        if not query:
            await update.message.reply_text("Usage: /search <movie or series>")
            return

        user_id = update.effective_user.id
        await update.message.reply_text(SEARCHING_MESSAGE)
        logger.info(f"User {user_id} searching for '{query}' (tag: {tag})")

        try:
            results = await self.registry.run(
                user_id,
                collect_results(self.provider, query, tag, self.min_size, self.max_results),
            )
        except SearchSuperseded:
            logger.info(f"Search '{query}' for user {user_id} superseded by a newer one")
            return
        except TooManyResults:
            await update.message.reply_text(TOO_MANY_RESULTS_MESSAGE.format(limit=self.max_results))
            return
        except SearchProviderError as e:
            logger.error(f"Archive search failed for user {user_id}: {e}")
            await update.message.reply_text(SEARCH_FAILED_MESSAGE)
            return

        if not results:
            await update.message.reply_text(NO_RESULTS_MESSAGE)
            return

        session = self.paginator.start(user_id, results)
        try:
            await self._send_page(context, update.effective_chat.id, user_id, session)
        except TelegramError as e:
            logger.error(f"Failed to send results to user {user_id}: {e}")
            self.paginator.discard(user_id, session.session_id)
            await update.message.reply_text(SEARCH_FAILED_MESSAGE)

    async def next_page(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._navigate_text(update, context, Direction.NEXT)

    async def prev_page(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._navigate_text(update, context, Direction.PREV)

    async def _navigate_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE, direction: Direction) -> None:
        if not update.message or not update.effective_user or not update.effective_chat:
            return

        user_id = update.effective_user.id
        session = self.paginator.get(user_id)
        shown_page = session.current_page if session else None
        outcome = self.paginator.advance(user_id, direction)
        if outcome is NavigationOutcome.EXPIRED:
            await update.message.reply_text(EXPIRED_MESSAGE)
            return
        if outcome is NavigationOutcome.NOT_HANDLED:
            await update.message.reply_text(NO_MORE_PAGES_MESSAGE)
            return

        new_page = session.current_page
        old_handle = session.navigation_handle
        try:
            await self._send_page(context, update.effective_chat.id, user_id, session)
        except TelegramError as e:
            logger.error(f"Failed to send page {new_page + 1} to user {user_id}: {e}")
            self._restore_page(session, new_page, shown_page)
            await update.message.reply_text(NAVIGATION_FAILED_MESSAGE)
            return
        await self._retire_prompt(context, old_handle)

    async def navigate(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None:
            return

        payload = decode_callback(query.data)
        if payload is None:
            await query.answer()
            return
        if update.effective_user is None or update.effective_user.id != payload.user_id:
            await query.answer(NOT_YOUR_SESSION_MESSAGE, show_alert=True)
            return

        outcome = self.paginator.advance(payload.user_id, payload.direction, payload.session_id, payload.page)
        if outcome is NavigationOutcome.EXPIRED:
            logger.warning(f"Stale navigation callback from user {payload.user_id}")
            await query.answer(EXPIRED_MESSAGE, show_alert=True)
            try:
                await query.edit_message_reply_markup(reply_markup=None)
            except TelegramError as e:
                logger.warning(f"Failed to clear stale buttons: {e}")
            return
        if outcome is NavigationOutcome.NOT_HANDLED:
            await query.answer(NO_MORE_PAGES_MESSAGE)
            return

        session = self.paginator.get(payload.user_id)
        new_page = session.current_page
        text = self.render_page(session)
        markup = self.keyboard(payload.user_id, session)
        await query.answer()
        try:
            await query.edit_message_text(text, reply_markup=markup, link_preview_options=NO_PREVIEW)
        except TelegramError as e:
            # A repeated tap renders the same page, which Telegram refuses as unchanged
            if isinstance(e, BadRequest) and "not modified" in str(e).lower():
                return
            logger.warning(f"Failed to show page {new_page + 1} to user {payload.user_id}: {e}")
            self._restore_page(session, new_page, payload.page)
            return
        if query.message:
            session.navigation_handle = (query.message.chat.id, query.message.message_id)

    @staticmethod
    def _restore_page(session: PaginationSession, attempted: int, shown: Optional[int]) -> None:
        """Point the session back at the page the user still sees, unless it moved on meanwhile."""
        if shown is not None and session.current_page == attempted:
            session.current_page = shown

    async def _send_page(self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, session: PaginationSession) -> None:
        message = await context.bot.send_message(
            chat_id=chat_id,
            text=self.render_page(session),
            reply_markup=self.keyboard(user_id, session),
            link_preview_options=NO_PREVIEW,
        )
        session.navigation_handle = (chat_id, message.message_id)

    async def _retire_prompt(self, context: ContextTypes.DEFAULT_TYPE, handle: Optional[Tuple[int, int]]) -> None:
        """Drop the buttons from the previous prompt once a newer page is sent."""
        if handle is None:
            return
        chat_id, message_id = handle
        try:
            await context.bot.edit_message_reply_markup(chat_id=chat_id, message_id=message_id, reply_markup=None)
        except TelegramError as e:
            logger.warning(f"Failed to clear old navigation buttons: {e}")
