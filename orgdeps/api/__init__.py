"""Remote API access: the quota-aware client and the cached content source."""

from .client import GitHubClient, WaitForQuotaReset
from .content import ContentFetcher, ContentSource

__all__ = ["ContentFetcher", "ContentSource", "GitHubClient", "WaitForQuotaReset"]
