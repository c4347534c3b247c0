"""Archive search over Telegram messages carrying large documents or videos."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional
import asyncio
import logging

from telethon import TelegramClient
from telethon.errors import RPCError
from telethon.sessions import StringSession
from telethon.tl.types import InputMessagesFilterDocument, InputMessagesFilterVideo, PeerChannel

logger = logging.getLogger(__name__)

MIN_RESULT_SIZE_BYTES = 50 * 1024 * 1024
MAX_SEARCH_RESULTS = 500
MAX_TITLE_LENGTH = 100


class SearchProviderError(Exception):
    """The archive could not be searched."""


class TooManyResults(Exception):
    def __init__(self, count: int):
        super().__init__(f"More than {count - 1} results")
        self.count = count


class SearchSuperseded(Exception):
    """A newer search from the same user cancelled this one."""


@dataclass(frozen=True)
class ArchiveItem:
    item_id: int
    size: int
    chat_id: int
    message_id: int
    caption: str = ""
    file_name: Optional[str] = None
    link: Optional[str] = None

    def render(self) -> str:
        title = self.file_name or (self.caption.splitlines()[0] if self.caption else f"File {self.item_id}")
        if len(title) > MAX_TITLE_LENGTH:
            title = title[:MAX_TITLE_LENGTH - 1].rstrip() + "…"
        line = f"🎬 {title} ({format_size(self.size)})"
        return f"{line}\n{self.link}" if self.link else line


def format_size(size: int) -> str:
    if size >= 1024 ** 3:
        return f"{size / 1024 ** 3:.2f} GB"
    return f"{size / 1024 ** 2:.0f} MB"


class SearchProvider(ABC):
    @abstractmethod
    def search(self, query: str, sub_filter: Optional[str] = None) -> AsyncIterator[ArchiveItem]:
        """Yield candidate items lazily. Results may repeat and may be small."""
        pass

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass


class TelethonArchiveSearch(SearchProvider):
    """Global message search through a logged-in user account."""

    FILTERS = (InputMessagesFilterDocument, InputMessagesFilterVideo)

    def __init__(self, api_id: int, api_hash: str, session: str):
        self.client = TelegramClient(StringSession(session), api_id, api_hash)

    async def connect(self) -> None:
        await self.client.start()
        logger.info("Archive search client connected")

    async def disconnect(self) -> None:
        await self.client.disconnect()
        logger.info("Archive search client disconnected")

    async def search(self, query: str, sub_filter: Optional[str] = None) -> AsyncIterator[ArchiveItem]:
        marker = sub_filter.lower() if sub_filter else None
        try:
            for message_filter in self.FILTERS:
                async for message in self.client.iter_messages(None, search=query, filter=message_filter()):
                    document = message.document
                    if document is None:
                        continue
                    caption = message.message or ""
                    if marker and marker not in caption.lower():
                        continue
                    yield ArchiveItem(
                        item_id=document.id,
                        size=document.size,
                        chat_id=message.chat_id,
                        message_id=message.id,
                        caption=caption,
                        file_name=message.file.name if message.file else None,
                        link=self._message_link(message),
                    )
        except (RPCError, ConnectionError) as e:
            raise SearchProviderError(str(e)) from e

    @staticmethod
    def _message_link(message) -> Optional[str]:
        username = getattr(message.chat, "username", None)
        if username:
            return f"https://t.me/{username}/{message.id}"
        if isinstance(message.peer_id, PeerChannel):
            return f"https://t.me/c/{message.peer_id.channel_id}/{message.id}"
        return None


async def collect_results(
    provider: SearchProvider,
    query: str,
    sub_filter: Optional[str] = None,
    min_size: int = MIN_RESULT_SIZE_BYTES,
    max_results: int = MAX_SEARCH_RESULTS,
) -> List[ArchiveItem]:
    """De-duplicate by item id and drop items below ``min_size``."""
    seen = set()
    results: List[ArchiveItem] = []
    async for item in provider.search(query, sub_filter):
        if item.size < min_size or item.item_id in seen:
            continue
        seen.add(item.item_id)
        results.append(item)
        if len(results) > max_results:
            raise TooManyResults(len(results))
    logger.info(f"Search for '{query}' found {len(results)} results")
    return results


class SearchRegistry:
    """Tracks one in-flight search per user and cancels it when superseded."""

    def __init__(self):
        self._tasks: Dict[int, asyncio.Task] = {}

    def cancel(self, user_id: int) -> bool:
        task = self._tasks.get(user_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"Cancelled stale search for user {user_id}")
        return True

    async def run(self, user_id: int, coro) -> List[ArchiveItem]:
        self.cancel(user_id)
        task = asyncio.ensure_future(coro)
        self._tasks[user_id] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._tasks.get(user_id) is not task:
                raise SearchSuperseded() from None
            raise
        finally:
            if self._tasks.get(user_id) is task:
                del self._tasks[user_id]

    def __contains__(self, user_id: object) -> bool:
        task = self._tasks.get(user_id)
        return task is not None and not task.done()
