"""Quota-aware async client for the GitHub REST API."""

from __future__ import annotations

import asyncio
import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from ..config import GitHubConfig
from ..errors import QuotaExceeded, QuotaExhausted, RemoteApiError, RequestTimeout
from ..logging import get_logger
from ..models import DirectoryEntry, RemoteContent

_THROTTLE_STATUSES = {403, 429}

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]


@dataclass(frozen=True)
class WaitForQuotaReset(wait_base):
    """Exponential backoff that also waits out the reset hint of the last throttled response.

    Attempt ``n`` waits ``min(initial * 2 ** (n - 1), ceiling)`` seconds, or until
    the advertised reset time when that is later.
    """

    initial: float
    ceiling: float
    clock: ClockFn = time.time

    def __call__(self, retry_state: RetryCallState) -> float:
        attempt = max(retry_state.attempt_number, 1)
        backoff = min(self.initial * 2 ** (attempt - 1), self.ceiling)
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        reset_at = getattr(exc, "reset_at", None)
        if reset_at is None:
            return backoff
        return max(reset_at - self.clock(), backoff)


class GitHubClient:
    """Issues throttling-tolerant requests against the GitHub REST API."""

    def __init__(
        self,
        config: GitHubConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = time.time,
    ) -> None:
        self.config = config
        self._sleep = sleep
        self._clock = clock
        self.logger = get_logger("api")
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "orgdeps",
        }
        if config.token:
            headers["Authorization"] = f"token {config.token}"
        self._http = httpx.AsyncClient(
            base_url=config.api_url,
            headers=headers,
            timeout=httpx.Timeout(config.request_timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Listing

    async def fetch_page(self, resource: str, page: int, page_size: int) -> List[Dict[str, Any]]:
        """Return one page of a paginated listing; a missing resource yields an empty page."""
        response = await self._request(resource, params={"page": page, "per_page": page_size})
        if response is None:
            return []
        payload = _json(response)
        if not isinstance(payload, list):
            raise RemoteApiError(
                f"Expected a list from {resource}, got {type(payload).__name__}",
                status=response.status_code,
            )
        return [item for item in payload if isinstance(item, dict)]

    async def list_items(
        self,
        resource: str,
        *,
        page_size: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Walk pages sequentially until an empty page or until ``limit`` items are collected."""
        size = page_size or self.config.per_page
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = await self.fetch_page(resource, page, size)
            self.logger.debug("Fetched %d items from %s page %d", len(batch), resource, page)
            if not batch:
                break
            items.extend(batch)
            if limit is not None and len(items) >= limit:
                return items[:limit]
            page += 1
        return items

    async def list_repositories(self, limit: Optional[int] = None) -> List[str]:
        """Return the names of every repository in the configured organization."""
        effective_limit = limit if limit is not None else self.config.repo_limit
        items = await self.list_items(
            f"/orgs/{self._org}/repos",
            page_size=self.config.per_page,
            limit=effective_limit,
        )
        names = [str(item["name"]) for item in items if item.get("name")]
        self.logger.info("Listed %d repositories for %s", len(names), self._org)
        return names

    async def check_access(self) -> Dict[str, Any]:
        """Fetch the organization record to confirm the credential can read it."""
        response = await self._request(f"/orgs/{self._org}")
        if response is None:
            raise RemoteApiError(f"Organization '{self._org}' not found", status=404)
        payload = _json(response)
        return payload if isinstance(payload, dict) else {}

    # ------------------------------------------------------------------
    # Contents

    async def fetch_resource(self, path: str) -> Optional[RemoteContent]:
        """Fetch a contents-API resource and decode it; ``None`` when it does not exist."""
        response = await self._request(path)
        if response is None:
            return None
        payload = _json(response)
        if not isinstance(payload, dict):
            # Directory listings come back as lists; they carry no file content.
            return None
        encoded = payload.get("content")
        if not isinstance(encoded, str) or (not encoded and payload.get("size")):
            self.logger.warning("No inline content returned for %s", path)
            return None
        content = _decode_content(encoded, payload.get("encoding"), path)
        token = response.headers.get("etag") or _as_optional_str(payload.get("sha"))
        return RemoteContent(content=content, token=token)

    async def fetch_file(self, repo: str, path: str) -> Optional[RemoteContent]:
        return await self.fetch_resource(self._contents_path(repo, path))

    async def list_directory(self, repo: str, path: str = "") -> Optional[List[DirectoryEntry]]:
        """Return the entries of a repository directory, or ``None`` if it is absent."""
        response = await self._request(self._contents_path(repo, path))
        if response is None:
            return None
        payload = _json(response)
        if not isinstance(payload, list):
            return None
        entries: List[DirectoryEntry] = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            name = str(item["name"])
            entries.append(
                DirectoryEntry(
                    name=name,
                    path=str(item.get("path") or _join(path, name)),
                    type=str(item.get("type") or "file"),
                )
            )
        return entries

    # ------------------------------------------------------------------
    # Internal helpers

    @property
    def _org(self) -> str:
        if not self.config.org:
            raise RemoteApiError("No organization configured")
        return self.config.org

    def _contents_path(self, repo: str, path: str) -> str:
        clean = path.strip("/")
        base = f"/repos/{quote(self._org)}/{quote(repo)}/contents"
        return f"{base}/{quote(clean)}" if clean else base

    async def _request(
        self, path: str, *, params: Mapping[str, Any] | None = None
    ) -> Optional[httpx.Response]:
        # A fresh retrying object per call scopes the backoff to this request chain.
        retrying = AsyncRetrying(
            sleep=self._sleep,
            retry=retry_if_exception_type(QuotaExceeded),
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=WaitForQuotaReset(
                initial=self.config.initial_backoff,
                ceiling=self.config.max_backoff,
                clock=self._clock,
            ),
            before_sleep=self._log_throttled,
            retry_error_callback=self._quota_exhausted,
        )
        return await retrying(self._send, path, params)

    def _log_throttled(self, retry_state: RetryCallState) -> None:
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.logger.info(
            "Rate limit hit for %s (retry %d/%d). Retrying in %.1f seconds...",
            retry_state.args[0],
            retry_state.attempt_number,
            self.config.max_retries,
            wait,
        )

    def _quota_exhausted(self, retry_state: RetryCallState) -> None:
        last = retry_state.outcome.exception() if retry_state.outcome else None
        raise QuotaExhausted(
            f"Rate limit still exceeded for {retry_state.args[0]} "
            f"after {self.config.max_retries} retries",
            status=getattr(last, "status", None) or 429,
        ) from last

    async def _send(
        self, path: str, params: Mapping[str, Any] | None
    ) -> Optional[httpx.Response]:
        try:
            response = await self._http.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise RequestTimeout(f"Request timed out for {path}") from exc
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Request failed for {path}: {exc}") from exc

        status = response.status_code
        if status == 200:
            return response
        if status == 404:
            return None
        if status in _THROTTLE_STATUSES:
            raise QuotaExceeded(
                f"Rate limited on {path}",
                status=status,
                reset_at=_reset_hint(response.headers, self._clock()),
            )
        raise RemoteApiError(
            f"GitHub API responded with status code {status} for {path}: {_snippet(response)}",
            status=status,
        )


def _reset_hint(headers: httpx.Headers, now: float) -> Optional[float]:
    retry_after = headers.get("retry-after")
    if retry_after:
        try:
            return now + float(retry_after)
        except ValueError:
            pass
    reset = headers.get("x-ratelimit-reset")
    if reset:
        try:
            return float(reset)
        except ValueError:
            return None
    return None


def _decode_content(encoded: str, encoding: Any, path: str) -> str:
    if encoding not in (None, "base64"):
        return encoded
    try:
        raw = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise RemoteApiError(f"Invalid base64 content for {path}") from exc
    return raw.decode("utf-8", errors="replace")


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise RemoteApiError(
            f"Invalid JSON returned for {response.request.url}", status=response.status_code
        ) from exc


def _snippet(response: httpx.Response, limit: int = 200) -> str:
    text = response.text.strip()
    return text[:limit] if text else response.reason_phrase


def _join(base: str, name: str) -> str:
    base = base.strip("/")
    return f"{base}/{name}" if base else name


def _as_optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


__all__ = ["GitHubClient", "WaitForQuotaReset"]
