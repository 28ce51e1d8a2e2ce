# mihomerge/services/fetch_service.py

import httpx
import logging
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel

from mihomerge.core.config import settings
from mihomerge.core.errors import SubscriptionError
from mihomerge.repos.cache_repo import CacheMeta, CacheRepo
from mihomerge.schemas.state import Subscription

logger = logging.getLogger(__name__)

class FetchResult(BaseModel):
    content: bytes
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    from_cache: bool = False

class FetchService:
    def __init__(self,
                 client: httpx.AsyncClient,
                 cache_repo: Optional[CacheRepo] = None,
                 user_agent: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.client = client
        self.cache_repo = cache_repo or CacheRepo()
        self.user_agent = user_agent or settings.SUBSCRIPTION_UA
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT

    async def fetch(self, subscription: Subscription) -> FetchResult:
        """
        Resolve a subscription to raw bytes and update its revalidation metadata.
        Parameters:
            subscription (Subscription): The record to resolve; mutated on success.
        Returns:
            FetchResult: The bytes plus where they came from.
        Raises:
            SubscriptionError: If neither the source nor the cache can provide content.
        """
        subscription_id = subscription.ensure_id()

        if subscription.url:
            result = await self._fetch_remote(subscription_id, subscription)
            if result.etag:
                subscription.etag = result.etag
            if result.last_modified:
                subscription.last_modified = result.last_modified
        elif subscription.path:
            result = self._read_local(subscription_id, subscription.path)
        else:
            raise SubscriptionError("missing url or path", subscription_id)

        subscription.last_updated = datetime.now(timezone.utc)
        return result

    def _read_local(self, subscription_id: str, path: str) -> FetchResult:
        try:
            with open(path, 'rb') as file:
                content = file.read()
        except OSError as e:
            raise SubscriptionError(f"failed to read subscription file {path}: {e}", subscription_id)

        logger.info(f"Read subscription '{subscription_id}' from {path} ({len(content)} bytes)")
        return FetchResult(content=content)

    async def _fetch_remote(self, subscription_id: str, subscription: Subscription) -> FetchResult:
        cached_meta = self.cache_repo.load_meta(subscription_id)
        etag = subscription.etag or cached_meta.etag
        last_modified = subscription.last_modified or cached_meta.last_modified

        headers = {"User-Agent": self.user_agent}
        if etag:
            headers["If-None-Match"] = etag
        if last_modified:
            headers["If-Modified-Since"] = last_modified

        logger.info(f"Fetching subscription '{subscription_id}' from {subscription.url}")

        try:
            response = await self.client.get(subscription.url, headers=headers, timeout=self.timeout, follow_redirects=True)
        except httpx.InvalidURL as e:
            logger.warning(f"Invalid URL for subscription '{subscription_id}': {e}")
            return self._from_cache(subscription_id, cached_meta, f"invalid URL: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Network error fetching '{subscription_id}': {e}")
            return self._from_cache(subscription_id, cached_meta, f"network error: {e}")

        if response.status_code == 304:
            logger.info(f"Subscription '{subscription_id}' not modified, using cache")
            return self._from_cache(subscription_id, cached_meta, "remote responded 304")

        if not response.is_success:
            logger.warning(f"Unexpected status {response.status_code} fetching '{subscription_id}'")
            return self._from_cache(subscription_id, cached_meta, f"remote responded {response.status_code}")

        content = response.content
        meta = CacheMeta(
            etag=response.headers.get("etag") or cached_meta.etag,
            last_modified=response.headers.get("last-modified") or cached_meta.last_modified,
        )
        try:
            self.cache_repo.save(subscription_id, content, meta)
        except OSError as e:
            logger.warning(f"Failed to cache subscription '{subscription_id}': {e}")

        logger.info(f"Fetched subscription '{subscription_id}' ({len(content)} bytes)")
        return FetchResult(content=content, etag=meta.etag, last_modified=meta.last_modified)

    def _from_cache(self, subscription_id: str, meta: CacheMeta, reason: str) -> FetchResult:
        content = self.cache_repo.load(subscription_id)
        if content is None:
            raise SubscriptionError(f"{reason} and no cached copy exists", subscription_id)
        return FetchResult(content=content, etag=meta.etag, last_modified=meta.last_modified, from_cache=True)
