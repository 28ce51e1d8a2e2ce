import os
import logging
from typing import Optional

from mihomerge.core.config import settings
from mihomerge.core.errors import BaseConfigError, DocumentError, TemplateError
from mihomerge.schemas.clash_config import ClashConfig

logger = logging.getLogger(__name__)

class DocumentRepo:
    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir or settings.DATA_DIR

    def _resolve(self, path: str, *subdirs: str) -> str:
        # Relative paths are looked up under the data directory first
        if os.path.isabs(path):
            return path
        candidate = os.path.join(self.data_dir, *subdirs, path)
        return candidate if os.path.exists(candidate) else path

    def _read(self, path: str) -> str:
        with open(path, 'r', encoding='utf-8-sig') as file:
            return file.read()

    def load_template(self, path: Optional[str] = None) -> ClashConfig:
        """
        Load the skeleton template every run is merged onto.
        Raises:
            TemplateError: If the template is missing or not a configuration mapping.
        """
        path = self._resolve(path or settings.TEMPLATE_PATH, "templates")
        try:
            template = ClashConfig.from_yaml(self._read(path))
        except OSError as e:
            raise TemplateError(f"failed to load template from {path}: {e}") from e
        except DocumentError as e:
            raise TemplateError(f"template {path} is not a valid configuration: {e}") from e

        logger.info(f"Loaded template {path} ({len(template.proxy_groups)} groups, {len(template.rules)} rules)")
        return template

    def load_base_config(self, path: Optional[str] = None) -> Optional[ClashConfig]:
        """
        Load the optional authoritative base config.
        Without an explicit path, `base-config.yaml` in the data directory is used when present.
        Raises:
            BaseConfigError: If a base config exists but cannot be read or parsed.
        """
        path = path or settings.BASE_CONFIG_PATH
        if path:
            path = self._resolve(path)
        else:
            path = os.path.join(self.data_dir, "base-config.yaml")
            if not os.path.exists(path):
                return None

        try:
            base = ClashConfig.from_yaml(self._read(path))
        except OSError as e:
            raise BaseConfigError(f"failed to load base config from {path}: {e}") from e
        except DocumentError as e:
            raise BaseConfigError(f"base config {path} is not a valid configuration: {e}") from e

        logger.info(f"Loaded base config {path}")
        return base

document_repo = DocumentRepo()
