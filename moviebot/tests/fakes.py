"""Test doubles for the clock and the archive search."""
from core.search import ArchiveItem, SearchProvider

MIB = 1024 * 1024


class FakeClock:
    """Controllable replacement for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSearchProvider(SearchProvider):
    def __init__(self, items=None, error=None):
        self.items = list(items or [])
        self.error = error
        self.queries = []

    async def search(self, query, sub_filter=None):
        self.queries.append((query, sub_filter))
        for item in self.items:
            yield item
        if self.error:
            raise self.error


def make_item(item_id: int, size: int = 100 * MIB) -> ArchiveItem:
    return ArchiveItem(
        item_id=item_id,
        size=size,
        chat_id=-100123,
        message_id=item_id,
        caption=f"Movie {item_id}",
        file_name=f"movie.{item_id}.mkv",
        link=f"https://t.me/c/123/{item_id}",
    )
