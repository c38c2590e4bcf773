"""Append-only JSON-lines file sink."""

import logging
import os

logger = logging.getLogger(__name__)


class FileSink:
    def __init__(self, file_path: str):
        self.file_path = file_path
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def write(self, line: str) -> bool:
        """Append one line. Returns False (and logs) on failure; never raises."""
        try:
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write(line if line.endswith("\n") else line + "\n")
            return True
        except OSError as e:
            logger.error("File sink write to %s failed: %s", self.file_path, e)
            return False
