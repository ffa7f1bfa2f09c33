"""
Line-oriented output files for discovered URLs and plugin reports.
"""

import logging
from pathlib import Path
from typing import Optional, Union


class LineWriter:
    """
    Writes one entry per line, flushing after each so results survive an
    interrupted crawl. Opening the file raises OSError on failure.
    """

    def __init__(self, path: Union[str, Path], header: Optional[str] = None):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self.lines_written = 0
        self._file = open(self.path, 'w', encoding='utf-8')
        if header is not None:
            self._file.write(header + "\n")
            self._file.flush()

    def write_line(self, text: str):
        self._file.write(text + "\n")
        self._file.flush()
        self.lines_written += 1

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self):
        if not self._file.closed:
            self._file.close()
            self.logger.debug(f"Closed {self.path} after {self.lines_written} lines")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
