"""
Decorators for the hydration and reconstruction endpoints.

Both decorators run the endpoint under the processing timeout and translate
the engine's exceptions into HTTPExceptions through one status table, so
`/hydrate`, `/hydrate/stream` and `/reconstruct` report failures alike.
"""

import logging
import asyncio
from functools import wraps
from typing import Awaitable, Callable, Optional, Sequence, Tuple, Type
from fastapi import UploadFile, HTTPException, Request

from utils.validation import (
    validate_file_content,
    PdfValidationError,
    ProcessingTimeoutError,
    MemoryLimitError,
    HydrationCancelledError,
    ExportError,
    VALIDATION_CONSTANTS
)

logger = logging.getLogger(__name__)

# (exception type, HTTP status, detail prefix); first match wins
ErrorMapping = Sequence[Tuple[Type[Exception], int, str]]

HYDRATION_ERRORS: ErrorMapping = (
    (PdfValidationError, 400, "PDF validation failed"),
    (ProcessingTimeoutError, 408, "Processing timeout"),
    (MemoryLimitError, 507, "Memory limit exceeded"),
    (HydrationCancelledError, 409, "Hydration cancelled"),
)

EXPORT_ERRORS: ErrorMapping = (
    (ExportError, 422, "Export failed"),
    (ValueError, 400, "Invalid export request"),
)


async def _run_guarded(
    call: Awaitable,
    timeout_seconds: int,
    errors: ErrorMapping,
    action: str,
    subject: str,
):
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(f"{action.capitalize()} of {subject} timed out after {timeout_seconds}s")
        raise HTTPException(
            status_code=408,
            detail=f"{action.capitalize()} timed out after {timeout_seconds} seconds."
        )
    except HTTPException:
        raise
    except Exception as e:
        for error_type, status, prefix in errors:
            if isinstance(e, error_type):
                log = logger.warning if status < 500 else logger.error
                log(f"{prefix} for {subject}: {e}")
                raise HTTPException(status_code=status, detail=f"{prefix}: {str(e)}")

        logger.exception(f"Unexpected error during {action} of {subject}: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error during {action}: {str(e)}"
        )


def _timeout(kwargs) -> int:
    processing_timeout: Optional[int] = kwargs.get('processing_timeout')
    return processing_timeout or VALIDATION_CONSTANTS['MAX_PROCESSING_TIME_SECONDS']


async def _read_pdf_upload(file: UploadFile) -> bytes:
    """Read an upload and check its name, size and %PDF signature."""
    if not file.filename or not file.filename.lower().endswith('.pdf'):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")

    try:
        content = await file.read()
    except Exception as e:
        logger.error(f"Error reading uploaded file: {e}")
        raise HTTPException(status_code=400, detail=f"Error reading uploaded file: {str(e)}")

    is_valid, error = validate_file_content(content, max_size_mb=VALIDATION_CONSTANTS['MAX_FILE_SIZE_MB'])
    if not is_valid:
        logger.warning(f"Rejected upload {file.filename}: {error}")
        raise HTTPException(status_code=400, detail=error)
    return content


def handle_pdf_processing(func: Callable) -> Callable:
    """
    Decorator for endpoints that hydrate an uploaded PDF.

    The endpoint must take `request: Request` and `file: UploadFile` as
    keyword arguments. The validated upload bytes are left in
    `request.state.file_content`.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        request: Request = kwargs.get('request')
        if not request:
            raise HTTPException(
                status_code=500,
                detail="Endpoint decorated with handle_pdf_processing must accept 'request: Request'"
            )

        file: UploadFile = kwargs.get('file')
        if not file:
            raise HTTPException(status_code=400, detail="File parameter is required")

        request.state.file_content = await _read_pdf_upload(file)
        return await _run_guarded(
            func(*args, **kwargs), _timeout(kwargs), HYDRATION_ERRORS, 'hydration', file.filename
        )

    return wrapper


def handle_export(func: Callable) -> Callable:
    """Decorator for reconstruction endpoints: `ExportError` maps to 422, bad arguments to 400."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        return await _run_guarded(func(*args, **kwargs), _timeout(kwargs), EXPORT_ERRORS, 'export', 'document')

    return wrapper
