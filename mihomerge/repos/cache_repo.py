import os
import re
import json
import hashlib
import logging
from typing import Optional
from pydantic import BaseModel, ValidationError

from mihomerge.core.config import settings
from mihomerge.repos.files import atomic_write

logger = logging.getLogger(__name__)

class CacheMeta(BaseModel):
    etag: Optional[str] = None
    last_modified: Optional[str] = None

class CacheRepo:
    def __init__(self, cache_dir: Optional[str] = None):
        self.cache_dir = cache_dir or settings.CACHE_DIR

    def _stem(self, subscription_id: str) -> str:
        # Ids are usually URLs; keep something readable and make it unique with a digest
        slug = re.sub(r"[^A-Za-z0-9._-]+", "_", subscription_id).strip("._")[:64]
        digest = hashlib.sha1(subscription_id.encode("utf-8")).hexdigest()[:12]
        return f"{slug}-{digest}" if slug else digest

    def content_path(self, subscription_id: str) -> str:
        return os.path.join(self.cache_dir, f"{self._stem(subscription_id)}.yaml")

    def meta_path(self, subscription_id: str) -> str:
        return os.path.join(self.cache_dir, f"{self._stem(subscription_id)}.meta.json")

    def load(self, subscription_id: str) -> Optional[bytes]:
        path = self.content_path(subscription_id)
        try:
            with open(path, 'rb') as file:
                return file.read()
        except FileNotFoundError:
            return None

    def load_meta(self, subscription_id: str) -> CacheMeta:
        path = self.meta_path(subscription_id)
        try:
            with open(path, 'r', encoding='utf-8') as file:
                return CacheMeta.model_validate(json.load(file))
        except FileNotFoundError:
            return CacheMeta()
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable cache metadata {path}: {e}")
            return CacheMeta()

    def save(self, subscription_id: str, content: bytes, meta: CacheMeta) -> None:
        atomic_write(self.content_path(subscription_id), content)
        atomic_write(self.meta_path(subscription_id), meta.model_dump_json().encode("utf-8"))
        logger.debug(f"Cached {len(content)} bytes for subscription '{subscription_id}'")
