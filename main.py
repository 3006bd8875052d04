"""PDF Hydration Python Server"""

import sys
import logging
import asyncio
import json
from typing import Optional
import os

import uvicorn
from fastapi import FastAPI, UploadFile, File, HTTPException, Query, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from rich.console import Console
from rich.logging import RichHandler

from engine import EngineConfig, __version__ as ENGINE_VERSION
from engine.hydration_pipeline import hydrate_document
from engine.hydration_worker import HydrationWorker
from exporters import reconstruct
from models.hydration_types import HydrateResponse, ReconstructRequest
from utils.endpoint_decorators import handle_pdf_processing, handle_export

API_VERSION = "2.0.0"
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "https://studiosimpli.com",
]
DEFAULT_TIMEOUT_SECONDS = 300
MIN_TIMEOUT_SECONDS = 30
MAX_TIMEOUT_SECONDS = 600
NDJSON_MEDIA_TYPE = "application/x-ndjson"
# Longest wait between two streamed events; None falls back to the request timeout
STREAM_IDLE_TIMEOUT_SECONDS: Optional[float] = None

logger = logging.getLogger("rich")

app = FastAPI(
    title="PDF Hydration API",
    description="Turn PDF pages into editable blocks and rebuild PDFs from them",
    version=API_VERSION
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _parse_engine_config(config: Optional[str]) -> EngineConfig:
    """Build an EngineConfig from the optional JSON form field."""
    if not config:
        return EngineConfig.default()
    try:
        config_dict = json.loads(config)
        if not isinstance(config_dict, dict):
            raise ValueError("config must be a JSON object")
        engine_config = EngineConfig.from_dict(config_dict)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON in config: {str(e)}")
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid config: {str(e)}")

    if not engine_config.validate():
        raise HTTPException(status_code=400, detail="Invalid config values")
    return engine_config


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "message": "PDF Hydration API",
        "version": API_VERSION,
        "engine_version": ENGINE_VERSION,
        "features": [
            "Hydration of PDF pages into text, table and image blocks",
            "Streaming progress events (NDJSON)",
            "Vector reconstruction with selectable text",
            "Annotation overlays (rect, ellipse, line, path, polygon, text, image)",
            "Raster fallback export"
        ]
    }

@app.get("/health")
async def health_check():
    """Health check with dependency verification"""
    try:
        import PIL
        import pdfminer
        import pikepdf
        import numpy

        return {
            "status": "healthy",
            "version": API_VERSION,
            "features": {
                "text_extraction": "pdfminer.six",
                "graphics_extraction": "pikepdf",
                "image_decoding": "Pillow",
                "pdf_generation": "pikepdf"
            },
            "dependencies": {
                "PIL": PIL.__version__,
                "pdfminer": pdfminer.__version__,
                "pikepdf": pikepdf.__version__,
                "numpy": numpy.__version__
            }
        }
    except ImportError as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": f"Missing dependency: {str(e)}"
            }
        )

@app.post("/hydrate", response_model=HydrateResponse)
@handle_pdf_processing
async def hydrate_pdf(
    *,
    request: Request,
    file: UploadFile = File(...),
    config: Optional[str] = Form(None, description="Optional JSON string with engine configuration (thresholds, extraction, limits)"),
    processing_timeout: Optional[int] = Query(DEFAULT_TIMEOUT_SECONDS, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS, description="Processing timeout in seconds")
):
    """
    Hydrate a PDF into editable pages.

    **Returns:**
    - One page per PDF page with its dimensions, blocks (`text`, `table`,
      `image`) and layout metadata. Block boxes are `[x%, y%, w%, h%]` of
      the page, top-left origin.
    """
    engine_config = _parse_engine_config(config)
    content = request.state.file_content

    logger.info(f"Hydrating {file.filename} ({len(content)} bytes)")

    pages = await asyncio.to_thread(hydrate_document, content, engine_config)

    logger.info(f"Successfully hydrated {len(pages)} pages")
    return HydrateResponse(pages=pages, pageCount=len(pages))

@app.post("/hydrate/stream")
@handle_pdf_processing
async def hydrate_pdf_stream(
    *,
    request: Request,
    file: UploadFile = File(...),
    config: Optional[str] = Form(None, description="Optional JSON string with engine configuration (thresholds, extraction, limits)"),
    processing_timeout: Optional[int] = Query(DEFAULT_TIMEOUT_SECONDS, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS, description="Processing timeout in seconds")
):
    """
    Hydrate a PDF and stream pipeline events as newline-delimited JSON.

    Events are `STAGE`, `PROGRESS`, and finally exactly one `COMPLETE`
    (with the pages) or `ERROR`. Disconnecting cancels the hydration at the
    next page boundary.
    """
    engine_config = _parse_engine_config(config)
    worker = HydrationWorker(request.state.file_content, config=engine_config).start()
    event_timeout = STREAM_IDLE_TIMEOUT_SECONDS or processing_timeout or DEFAULT_TIMEOUT_SECONDS

    logger.info(f"Streaming hydration of {file.filename}")

    def event_lines():
        try:
            for event in worker.events(timeout=event_timeout):
                yield event.model_dump_json() + "\n"
        finally:
            if worker.is_running:
                worker.cancel()

    return StreamingResponse(event_lines(), media_type=NDJSON_MEDIA_TYPE)

@app.post("/reconstruct")
@handle_export
async def reconstruct_pdf(
    *,
    body: ReconstructRequest,
    processing_timeout: Optional[int] = Query(DEFAULT_TIMEOUT_SECONDS, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS, description="Processing timeout in seconds")
):
    """
    Rebuild a PDF from hydrated pages and annotation overlays.

    `annotations[i]` holds the drawing objects of `pages[i]`. `mode` is
    `vector` (selectable text, native shapes) or `raster` (one image per
    page).
    """
    logger.info(f"Reconstructing {len(body.pages)} pages in {body.mode} mode")

    pdf_bytes = await asyncio.to_thread(
        reconstruct,
        body.pages,
        body.annotations,
        body.mode
    )

    logger.info(f"Successfully reconstructed PDF ({len(pdf_bytes)} bytes)")
    return Response(
        content=pdf_bytes,
        media_type='application/pdf',
        headers={
            "Content-Disposition": "attachment; filename=reconstructed.pdf"
        }
    )

def _configure_server_logging():
    """Configure logging with Rich handler and filters for clean output"""
    console = Console(force_terminal=True)

    # Get level from env, default to INFO
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    class ShutdownFilter(logging.Filter):
        """Filter out shutdown-related log messages"""
        def filter(self, record):
            if record.exc_info and record.exc_info[0] in (KeyboardInterrupt, asyncio.CancelledError):
                return False
            if "CancelledError" in str(record.msg) or "KeyboardInterrupt" in str(record.msg):
                return False
            return True

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=True
    )
    rich_handler.addFilter(ShutdownFilter())

    # Silence everything by default
    logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[rich_handler])

    # Allow server startup logs
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)

    # Set specific module log levels
    for module_name in ["main", "rich", "engine", "extractors", "processors", "exporters", "utils"]:
        logging.getLogger(module_name).setLevel(log_level)

    return console

def _find_free_port(start_port: int = 8000) -> int:
    """Find an available port starting from the given port"""
    import socket

    port = start_port
    max_port = start_port + 100

    while port < max_port:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(('localhost', port))
                return port
        except OSError:
            port += 1

    return start_port

server_console = _configure_server_logging()

if __name__ == "__main__":
    free_port = _find_free_port()
    server_console.print(f"[bold green]🚀 Starting server on http://localhost:{free_port}[/bold green]")

    try:
        uvicorn.run("main:app", host="0.0.0.0", port=free_port, reload=True, log_config=None)
    except KeyboardInterrupt:
        server_console.print("\n[bold yellow]🛑 Server stopped.[/bold yellow]")
        sys.exit(0)
