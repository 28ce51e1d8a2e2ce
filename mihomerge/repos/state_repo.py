import os
import yaml
import logging
from typing import Any, Optional
from pydantic import ValidationError

from mihomerge.core.config import settings
from mihomerge.repos.files import atomic_write
from mihomerge.schemas.state import AppState, SubscriptionList

logger = logging.getLogger(__name__)

class StateRepo:
    def __init__(self, data_dir: Optional[str] = None):
        self.base_path = data_dir or settings.DATA_DIR

    @property
    def state_path(self) -> str:
        return os.path.join(self.base_path, "app.yaml")

    @property
    def subscriptions_path(self) -> str:
        return os.path.join(self.base_path, "subscriptions.yaml")

    def _read(self, path: str) -> Optional[Any]:
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as file:
                return yaml.safe_load(file)
        except (OSError, yaml.YAMLError) as e:
            raise IOError(f"Error loading {path}: {e}")

    def _write(self, path: str, data: Any) -> None:
        try:
            text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
            atomic_write(path, text.encode("utf-8"))
        except OSError as e:
            raise IOError(f"Error saving {path}: {e}")

    def load_state(self) -> AppState:
        '''
        Load the persisted app state. A missing file yields an empty state.
        Raises:
            IOError: If the file exists but cannot be read or validated.
        '''
        data = self._read(self.state_path)
        try:
            return AppState.model_validate(data or {})
        except ValidationError as e:
            raise IOError(f"Invalid app state in {self.state_path}: {e}")

    def save_state(self, state: AppState) -> None:
        self._write(self.state_path, state.model_dump(mode="json"))

    def load_subscriptions(self, path: Optional[str] = None) -> SubscriptionList:
        '''
        Load a subscription list, defaulting to the one under the data directory.
        Args:
            path (Optional[str]): An alternative subscriptions file.
        Returns:
            SubscriptionList: The stored list, or an empty one if the file does not exist.
        Raises:
            IOError: If the file exists but cannot be read or validated.
        '''
        path = path or self.subscriptions_path
        data = self._read(path)
        if data is None:
            logger.info(f"No subscription list at {path}, starting empty")
            return SubscriptionList()
        try:
            return SubscriptionList.model_validate(data)
        except ValidationError as e:
            raise IOError(f"Invalid subscription list in {path}: {e}")

    def save_subscriptions(self, subscriptions: SubscriptionList, path: Optional[str] = None) -> None:
        self._write(path or self.subscriptions_path, subscriptions.model_dump(mode="json"))

state_repo = StateRepo()
