"""
Document validation, run budgets and error types

The exception classes here are shared by hydration and reconstruction.
"""

import time
import psutil
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Validation constants
VALIDATION_CONSTANTS = {
    'PDF_SIGNATURE': b'%PDF',
    'SIGNATURE_SEARCH_BYTES': 1024,
    'MAX_FILE_SIZE_MB': 50,
    'MAX_PROCESSING_TIME_SECONDS': 300,  # 5 minutes
    'MAX_MEMORY_USAGE_MB': 1000,  # 1GB
    'SUPPORTED_PDF_VERSIONS': ['1.0', '1.1', '1.2', '1.3', '1.4', '1.5', '1.6', '1.7', '2.0'],
}


class PdfValidationError(Exception):
    """Document bytes are missing, oversized, or cannot be parsed"""
    pass


class ProcessingTimeoutError(Exception):
    """Custom exception for processing timeouts"""
    pass


class MemoryLimitError(Exception):
    """Custom exception for memory limit exceeded"""
    pass


class HydrationCancelledError(Exception):
    """Caller cancelled a running hydration"""
    pass


class HydrationError(Exception):
    """A hydration run ended with an ERROR event"""
    pass


class ExportError(Exception):
    """Reconstruction cannot produce a valid document"""
    pass


def validate_file_content(content: bytes, max_size_mb: Optional[int] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate raw document bytes before parsing

    Args:
        content: Raw file content bytes
        max_size_mb: Maximum file size in MB

    Returns:
        Tuple of (is_valid, error_message)
    """
    if max_size_mb is None:
        max_size_mb = VALIDATION_CONSTANTS['MAX_FILE_SIZE_MB']

    if not content:
        return False, "Empty document buffer"

    size_mb = len(content) / (1024 * 1024)
    if size_mb > max_size_mb:
        return False, f"File too large: {size_mb:.1f}MB (max: {max_size_mb}MB)"

    if len(content) < 4:
        return False, "File too small to be a valid PDF"

    # Some producers emit junk before the header; readers tolerate it within the first 1KB
    signature = VALIDATION_CONSTANTS['PDF_SIGNATURE']
    offset = content.find(signature, 0, VALIDATION_CONSTANTS['SIGNATURE_SEARCH_BYTES'])
    if offset < 0:
        return False, "Invalid PDF signature in uploaded content"

    version_bytes = content[offset + 5:offset + 8]
    try:
        version_str = version_bytes.decode('ascii')
        if version_str not in VALIDATION_CONSTANTS['SUPPORTED_PDF_VERSIONS']:
            logger.warning(f"Unsupported PDF version: {version_str}")
    except UnicodeDecodeError:
        logger.warning("Could not decode PDF version")

    return True, None


class ResourceMonitor:
    """
    Wall-clock and memory budget for one hydration run.

    `checkpoint()` is called before each page; it records the peak resident
    set size and raises once either budget is exhausted.
    """

    def __init__(self, max_memory_mb: Optional[int] = None, max_time_seconds: Optional[int] = None):
        self.max_memory_mb = max_memory_mb or VALIDATION_CONSTANTS['MAX_MEMORY_USAGE_MB']
        self.max_time_seconds = max_time_seconds or VALIDATION_CONSTANTS['MAX_PROCESSING_TIME_SECONDS']
        self._process = psutil.Process()
        self._started: Optional[float] = None
        self.baseline_mb = 0.0
        self.peak_mb = 0.0
        self.pages_checked = 0

    def __enter__(self) -> 'ResourceMonitor':
        self._started = time.monotonic()
        self.baseline_mb = self.peak_mb = self._rss_mb() or 0.0
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.info(
            f"Hydration used {self.elapsed:.2f}s over {self.pages_checked} pages, "
            f"peak memory {self.peak_mb:.1f}MB ({self.peak_mb - self.baseline_mb:+.1f}MB)"
        )
        return False

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started if self._started is not None else 0.0

    def _rss_mb(self) -> Optional[float]:
        try:
            return self._process.memory_info().rss / (1024 * 1024)
        except psutil.Error as e:
            logger.warning(f"Could not read memory usage: {e}")
            return None

    def checkpoint(self, page_num: Optional[int] = None) -> None:
        """
        Raises:
            ProcessingTimeoutError: The run exceeded its time budget
            MemoryLimitError: Resident memory exceeded its budget
        """
        where = f" before page {page_num}" if page_num is not None else ""
        if self.elapsed > self.max_time_seconds:
            raise ProcessingTimeoutError(
                f"Hydration timed out{where} after {self.elapsed:.1f}s (max: {self.max_time_seconds}s)"
            )

        current = self._rss_mb()
        if current is None:
            return
        self.peak_mb = max(self.peak_mb, current)
        self.pages_checked += 1
        if current > self.max_memory_mb:
            raise MemoryLimitError(
                f"Memory limit exceeded{where}: {current:.1f}MB (max: {self.max_memory_mb}MB)"
            )


__all__ = [
    'validate_file_content',
    'ResourceMonitor',
    'PdfValidationError',
    'ProcessingTimeoutError',
    'MemoryLimitError',
    'HydrationCancelledError',
    'HydrationError',
    'ExportError',
    'VALIDATION_CONSTANTS'
]
