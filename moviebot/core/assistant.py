"""Rate-limited, memory-backed conversations with the language model."""
from typing import Optional
import logging

from core.ai import AIService, DEFAULT_SYSTEM_PROMPT
from core.rate_limiter import RateLimiter
from storage.memory import ASSISTANT, USER, ConversationMemory

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "AI is currently disabled."
FAILURE_MESSAGE = "Error: AI could not reply. Please try again."
PROMPT_TOO_SHORT_MESSAGE = "Ask me something!"
MIN_PROMPT_LENGTH = 3


class Assistant:
    def __init__(
        self,
        ai_service: Optional[AIService],
        rate_limiter: RateLimiter,
        memory: ConversationMemory,
        enabled: bool = True,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        self.ai = ai_service
        self.rate_limiter = rate_limiter
        self.memory = memory
        self.enabled = enabled
        self.system_prompt = system_prompt

    @property
    def available(self) -> bool:
        return self.enabled and self.ai is not None

    async def ask(self, user_id: int, prompt: str) -> str:
        if not self.available:
            return DISABLED_MESSAGE

        prompt = prompt.strip()
        if len(prompt) < MIN_PROMPT_LENGTH:
            return PROMPT_TOO_SHORT_MESSAGE

        global_check = self.rate_limiter.check_global()
        if not global_check.allowed:
            logger.info(f"Global limit hit ({global_check.window}) for user {user_id}")
            return f"⚠️ {global_check.reason}"

        user_check = self.rate_limiter.check_user(user_id)
        if not user_check.allowed:
            logger.info(f"User {user_id} hit the {user_check.window} limit")
            return f"⚠️ {user_check.reason}"

        recorded_at = self.rate_limiter.record(user_id)

        try:
            history = self.memory.get_history(user_id)
            reply = await self.ai.generate(self.system_prompt, history, prompt)  # type: ignore[union-attr]
        except Exception as e:
            logger.error(f"Model provider error for user {user_id}: {e}")
            self.rate_limiter.rollback(user_id, recorded_at)
            return FAILURE_MESSAGE

        self.memory.append(user_id, USER, prompt)
        self.memory.append(user_id, ASSISTANT, reply)
        logger.info(f"Answered user {user_id} with {len(history)} turns of context")
        return reply

    def clear(self, user_id: int) -> None:
        self.memory.clear(user_id)

    def stats(self, user_id: int) -> str:
        usage = self.rate_limiter.usage(user_id)
        if usage is None:
            return "You haven't made any AI requests yet."

        limiter = self.rate_limiter
        return (
            "📊 *Your Usage Stats*\n"
            f"Today: {usage.daily}/{limiter.user_per_day}\n"
            f"This hour: {usage.hourly}/{limiter.user_per_hour}\n"
            f"This minute: {usage.minute}/{limiter.user_per_minute}\n\n"
            f"💬 Conversation messages: {self.memory.history_length(user_id)}/{self.memory.max_history}\n"
            f"Global today: {usage.global_daily}/{limiter.global_per_day}"
        )
