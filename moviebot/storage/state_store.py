"""Per-user state stores.

Every piece of per-user state (rate windows, conversations, pagination
sessions) is kept behind ``UserStateStore`` so it can be swapped for an
external cache without touching the callers. Note: this uses an in-memory
approach, so when the bot restarts all state is lost.
"""
from abc import ABC, abstractmethod
from typing import Callable, Dict, Generic, Iterator, Optional, TypeVar

T = TypeVar("T")


class UserStateStore(ABC, Generic[T]):
    """Key-value store keyed by Telegram user id."""

    @abstractmethod
    def get(self, user_id: int) -> Optional[T]:
        pass

    @abstractmethod
    def set(self, user_id: int, state: T) -> None:
        pass

    @abstractmethod
    def delete(self, user_id: int) -> None:
        pass

    @abstractmethod
    def values(self) -> Iterator[T]:
        pass

    @abstractmethod
    def __contains__(self, user_id: object) -> bool:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    def get_or_create(self, user_id: int, factory: Callable[[], T]) -> T:
        state = self.get(user_id)
        if state is None:
            state = factory()
            self.set(user_id, state)
        return state


class InMemoryStateStore(UserStateStore[T]):
    def __init__(self):
        self._states: Dict[int, T] = {}

    def get(self, user_id: int) -> Optional[T]:
        return self._states.get(user_id)

    def set(self, user_id: int, state: T) -> None:
        self._states[user_id] = state

    def delete(self, user_id: int) -> None:
        self._states.pop(user_id, None)

    def values(self) -> Iterator[T]:
        return iter(list(self._states.values()))

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._states

    def __len__(self) -> int:
        return len(self._states)
