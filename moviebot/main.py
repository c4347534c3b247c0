#!/usr/bin/env python3
"""
MovieBot - A Telegram bot that finds large media files in a message archive
and chats with a hosted language model.
"""
import logging

import config
from core import AIService, Assistant, MovieBot, Paginator, RateLimiter, SearchRegistry, TelethonArchiveSearch
from plugins import AssistantPlugin, HelpPlugin, SearchPlugin
from storage import ConversationMemory

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def main():
    config.validate_config()

    rate_limiter = RateLimiter(
        global_per_minute=config.GLOBAL_MAX_REQUESTS_PER_MINUTE,
        global_per_day=config.GLOBAL_MAX_REQUESTS_PER_DAY,
        user_per_minute=config.USER_MAX_REQUESTS_PER_MINUTE,
        user_per_hour=config.USER_MAX_REQUESTS_PER_HOUR,
        user_per_day=config.USER_MAX_REQUESTS_PER_DAY,
    )
    memory = ConversationMemory(
        max_history=config.MAX_HISTORY_LENGTH,
        context_window_minutes=config.CONTEXT_WINDOW_MINUTES,
        max_tokens_per_message=config.MAX_TOKENS_PER_MESSAGE,
    )
    ai_service = None
    if config.llm_enabled():
        ai_service = AIService(
            config.GEMINI_API_KEY,
            model=config.AI_MODEL,
            base_url=config.AI_BASE_URL,
            timeout=config.AI_TIMEOUT_SECONDS,
        )
    assistant = Assistant(
        ai_service,
        rate_limiter,
        memory,
        enabled=config.FEATURE_FLAG_LLM,
        system_prompt=config.load_system_prompt(),
    )

    provider = None
    if config.search_enabled():
        provider = TelethonArchiveSearch(config.API_ID, config.API_HASH or "", config.TELETHON_SESSION or "")
    else:
        logger.warning("API_ID/API_HASH/TELETHON_SESSION not set, /search is disabled")
    paginator = Paginator(page_size=config.PAGE_SIZE, ttl_minutes=config.PAGINATION_TTL_MINUTES)

    bot = MovieBot(config.BOT_TOKEN or "")
    bot.register_plugin(HelpPlugin())
    bot.register_plugin(AssistantPlugin(assistant))
    bot.register_plugin(SearchPlugin(
        provider,
        paginator,
        SearchRegistry(),
        min_size=config.MIN_RESULT_SIZE_BYTES,
        max_results=config.MAX_SEARCH_RESULTS,
    ))

    logger.info("🎬 MovieBot starting up...")
    logger.info(
        f"Rate limits: {config.GLOBAL_MAX_REQUESTS_PER_DAY} global/day, "
        f"{config.USER_MAX_REQUESTS_PER_DAY} per-user/day"
    )
    logger.info(f"Memory: {config.MAX_HISTORY_LENGTH} messages, {config.CONTEXT_WINDOW_MINUTES} min timeout")
    logger.info(f"AI {'enabled' if assistant.available else 'disabled'}")

    if config.WEBHOOK_URL:
        bot.run_webhook("0.0.0.0", config.PORT, config.BOT_TOKEN or "", f"{config.WEBHOOK_URL}{config.BOT_TOKEN}")
    else:
        bot.run_polling()


if __name__ == "__main__":
    main()
