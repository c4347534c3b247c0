"""Hosted language model access through an OpenAI-compatible API."""
from openai import AsyncOpenAI, OpenAIError
from typing import Dict, List, Sequence
import logging

from storage.memory import ASSISTANT, USER, Turn

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
EMPTY_REPLY = "No response."

# Stored conversation roles -> chat completion roles
ROLE_MAP = {
    USER: "user",
    ASSISTANT: "assistant",
}


class ModelProviderError(Exception):
    """The model call failed or returned nothing usable."""


def to_messages(system_instruction: str, turns: Sequence[Turn], prompt: str) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_instruction}]
    messages.extend({"role": ROLE_MAP[turn.role], "content": turn.content} for turn in turns)
    messages.append({"role": "user", "content": prompt})
    return messages


class AIService:
    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        temperature: float = 0.7,
        max_output_tokens: int = 512,
        timeout: float = 30.0,
    ):
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        # Failed calls are rolled back by the caller, never retried here
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    async def generate(self, system_instruction: str, turns: Sequence[Turn], prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=to_messages(system_instruction, turns, prompt),  # type: ignore
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
            )
        except OpenAIError as e:
            raise ModelProviderError(str(e)) from e

        if not response.choices:
            raise ModelProviderError("Model returned no choices")
        return response.choices[0].message.content or EMPTY_REPLY
