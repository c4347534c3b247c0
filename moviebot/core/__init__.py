"""Core bot components."""
from core.bot import MovieBot
from core.ai import AIService
from core.assistant import Assistant
from core.pagination import Paginator
from core.rate_limiter import RateLimiter
from core.search import SearchRegistry, TelethonArchiveSearch

__all__ = ['MovieBot', 'AIService', 'Assistant', 'Paginator', 'RateLimiter', 'SearchRegistry', 'TelethonArchiveSearch']
