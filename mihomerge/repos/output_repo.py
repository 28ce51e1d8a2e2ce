import os
import logging
from typing import Optional

from mihomerge.core.config import settings
from mihomerge.repos.files import atomic_write

logger = logging.getLogger(__name__)

class OutputRepo:
    def __init__(self, output_path: Optional[str] = None):
        self.output_path = output_path or settings.OUTPUT_PATH

    def write(self, text: str, path: Optional[str] = None) -> str:
        '''
        Write the merged config and return the path it was written to.
        Raises:
            IOError: If the file cannot be written.
        '''
        path = os.path.abspath(path or self.output_path)
        try:
            atomic_write(path, text.encode("utf-8"))
        except OSError as e:
            raise IOError(f"Error writing merged config to {path}: {e}")
        logger.info(f"Merged config written to {path}")
        return path

output_repo = OutputRepo()
