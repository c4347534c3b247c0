"""
Unit tests for the /ask flow.
Tests the feature flag short circuit, quota gating, rollback on model failure
and conversation decay between questions.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from core.ai import AIService, ModelProviderError, to_messages
from core.assistant import DISABLED_MESSAGE, FAILURE_MESSAGE, PROMPT_TOO_SHORT_MESSAGE, Assistant
from core.rate_limiter import RateLimiter
from storage.memory import ASSISTANT, USER, ConversationMemory, Turn
from utils.clock import MINUTE


@pytest.fixture
def ai_service():
    service = Mock(spec=AIService)
    service.generate = AsyncMock(return_value="Try Dune (2021).")
    return service


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture
def memory(clock):
    return ConversationMemory(clock=clock)


@pytest.fixture
def assistant(ai_service, limiter, memory):
    return Assistant(ai_service, limiter, memory, system_prompt="Be brief.")


class TestAssistant:
    @pytest.mark.asyncio
    async def test_successful_answer_is_remembered(self, assistant, ai_service, limiter, memory):
        reply = await assistant.ask(1, "recommend a movie")

        assert reply == "Try Dune (2021)."
        ai_service.generate.assert_awaited_once_with("Be brief.", [], "recommend a movie")
        assert [(t.role, t.content) for t in memory.get_history(1)] == [
            (USER, "recommend a movie"),
            (ASSISTANT, "Try Dune (2021)."),
        ]
        assert limiter.user_state(1).daily_count == 1
        assert limiter.global_state.daily_count == 1

    @pytest.mark.asyncio
    async def test_history_is_sent_with_next_question(self, assistant, ai_service):
        await assistant.ask(1, "recommend a movie")
        await assistant.ask(1, "something shorter?")

        history = ai_service.generate.await_args_list[1].args[1]
        assert [t.content for t in history] == ["recommend a movie", "Try Dune (2021)."]

    @pytest.mark.asyncio
    async def test_idle_conversation_starts_empty(self, assistant, ai_service, clock):
        """After 31 idle minutes the model sees no history."""
        await assistant.ask(1, "recommend a movie")
        clock.advance(31 * MINUTE)
        await assistant.ask(1, "and another one?")

        assert ai_service.generate.await_args_list[1].args[1] == []

    @pytest.mark.asyncio
    async def test_model_failure_rolls_back_quota(self, assistant, ai_service, limiter, memory, clock):
        await assistant.ask(1, "first question")
        clock.advance(5)
        global_before = (list(limiter.global_state.request_timestamps), limiter.global_state.daily_count)
        user_before = (list(limiter.user_state(1).request_timestamps), limiter.user_state(1).daily_count)
        ai_service.generate.side_effect = ModelProviderError("503 Service Unavailable")

        reply = await assistant.ask(1, "second question")

        assert reply == FAILURE_MESSAGE
        assert (list(limiter.global_state.request_timestamps), limiter.global_state.daily_count) == global_before
        assert (list(limiter.user_state(1).request_timestamps), limiter.user_state(1).daily_count) == user_before
        assert memory.history_length(1) == 2

    @pytest.mark.asyncio
    async def test_failed_call_does_not_undo_overlapping_request(self, assistant, ai_service, limiter, clock):
        async def fail_after_other_user_records(*args):
            clock.advance(3)
            limiter.record(2)
            raise ModelProviderError("timeout")

        ai_service.generate.side_effect = fail_after_other_user_records

        assert await assistant.ask(1, "recommend a movie") == FAILURE_MESSAGE
        assert limiter.global_state.request_timestamps == [clock()]
        assert limiter.global_state.daily_count == 1
        assert limiter.user_state(1).request_timestamps == []

    @pytest.mark.asyncio
    async def test_user_minute_limit(self, assistant, ai_service, clock):
        for _ in range(5):
            assert await assistant.ask(1, "another question") == "Try Dune (2021)."
            clock.advance(1)

        reply = await assistant.ask(1, "one more")
        assert reply.startswith("⚠️ You're sending requests too quickly")
        assert ai_service.generate.await_count == 5

        clock.advance(MINUTE)
        assert await assistant.ask(1, "one more") == "Try Dune (2021)."

    @pytest.mark.asyncio
    async def test_global_limit_checked_first(self, ai_service, memory, clock):
        limiter = RateLimiter(global_per_day=1, clock=clock)
        assistant = Assistant(ai_service, limiter, memory)
        await assistant.ask(1, "question one")

        reply = await assistant.ask(2, "question two")

        assert reply.startswith("⚠️ Global daily limit reached")
        assert limiter.user_state(2) is None

    @pytest.mark.asyncio
    async def test_disabled_short_circuits(self, ai_service, limiter, memory):
        assistant = Assistant(ai_service, limiter, memory, enabled=False)

        assert await assistant.ask(1, "recommend a movie") == DISABLED_MESSAGE
        assert limiter.user_state(1) is None
        ai_service.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credentials_short_circuit(self, limiter, memory):
        assistant = Assistant(None, limiter, memory)

        assert assistant.available is False
        assert await assistant.ask(1, "recommend a movie") == DISABLED_MESSAGE

    @pytest.mark.asyncio
    async def test_short_prompt(self, assistant, limiter):
        assert await assistant.ask(1, " hi ") == PROMPT_TOO_SHORT_MESSAGE
        assert limiter.user_state(1) is None

    @pytest.mark.asyncio
    async def test_stats(self, assistant):
        assert assistant.stats(1) == "You haven't made any AI requests yet."

        await assistant.ask(1, "recommend a movie")
        stats = assistant.stats(1)

        assert "Today: 1/50" in stats
        assert "This hour: 1/20" in stats
        assert "This minute: 1/5" in stats
        assert "Conversation messages: 2/10" in stats
        assert "Global today: 1/180" in stats

    @pytest.mark.asyncio
    async def test_clear(self, assistant, memory):
        await assistant.ask(1, "recommend a movie")
        assistant.clear(1)

        assert memory.get_history(1) == []


class TestAIService:
    def test_roles_map_to_chat_completion_roles(self):
        turns = [Turn(USER, "hi", 1.0), Turn(ASSISTANT, "hello", 2.0)]

        assert to_messages("Be brief.", turns, "bye") == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "bye"},
        ]

    @pytest.mark.asyncio
    async def test_generate_returns_first_choice(self):
        service = AIService(api_key="test-key", model="gemini-test")
        response = Mock(choices=[Mock(message=Mock(content="Sure."))])
        service.client = Mock()
        service.client.chat.completions.create = AsyncMock(return_value=response)

        assert await service.generate("Be brief.", [], "hi") == "Sure."
        kwargs = service.client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_empty_content_falls_back(self):
        service = AIService(api_key="test-key")
        service.client = Mock()
        service.client.chat.completions.create = AsyncMock(
            return_value=Mock(choices=[Mock(message=Mock(content=None))])
        )

        assert await service.generate("Be brief.", [], "hi") == "No response."

    @pytest.mark.asyncio
    async def test_no_choices_raises(self):
        service = AIService(api_key="test-key")
        service.client = Mock()
        service.client.chat.completions.create = AsyncMock(return_value=Mock(choices=[]))

        with pytest.raises(ModelProviderError):
            await service.generate("Be brief.", [], "hi")

    @pytest.mark.asyncio
    async def test_sdk_errors_are_wrapped(self):
        from openai import APIConnectionError

        service = AIService(api_key="test-key")
        service.client = Mock()
        service.client.chat.completions.create = AsyncMock(side_effect=APIConnectionError(request=Mock()))

        with pytest.raises(ModelProviderError):
            await service.generate("Be brief.", [], "hi")
