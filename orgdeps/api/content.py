"""Repository content access with the content cache in front of the API client."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..logging import get_logger
from ..models import DirectoryEntry, RemoteContent
from ..stores import ContentCache


class ContentFetcher(Protocol):
    async def fetch_file(self, repo: str, path: str) -> Optional[RemoteContent]: ...

    async def list_directory(self, repo: str, path: str = "") -> Optional[List[DirectoryEntry]]: ...


class ContentSource:
    """Serves file content from the cache when fresh, otherwise from the remote API."""

    def __init__(self, fetcher: ContentFetcher, cache: ContentCache | None = None) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.logger = get_logger("content")

    async def get_file_content(self, repo: str, path: str) -> Optional[str]:
        """Return the decoded text of ``path`` in ``repo``, or ``None`` when absent."""
        if self.cache is not None:
            cached = await self.cache.get(repo, path)
            if cached is not None:
                self.logger.debug("Cache hit for %s:%s", repo, path)
                return cached.content

        fetched = await self.fetcher.fetch_file(repo, path)
        if fetched is None:
            self.logger.debug("No %s in %s", path, repo)
            return None
        if self.cache is not None:
            await self.cache.put(repo, path, fetched.content, fetched.token)
        return fetched.content

    async def list_directory(self, repo: str, path: str = "") -> Optional[List[DirectoryEntry]]:
        return await self.fetcher.list_directory(repo, path)


__all__ = ["ContentFetcher", "ContentSource"]
