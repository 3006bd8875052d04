"""
PDF Hydration Engine

Core engine package for turning PDF bytes into the editable page model:

- pdf_engine: PDFEngine, the document context manager and processor host
- text_processor / content_processor: per-document extraction services
- hydration_pipeline: the staged page pipeline and its event stream
- hydration_worker: one worker thread per document with cancellation
- config: thresholds, extraction options and engine limits

Only the configuration is re-exported here; the processing modules import
the clustering components, which in turn read their thresholds from
engine.config.
"""

__version__ = "3.0.0"

from engine.config import (
    EngineConfig,
    ExportOptions,
    ExtractionOptions,
    HydrationThresholds,
    ProcessorOptions,
)

__all__ = [
    'EngineConfig',
    'ExportOptions',
    'ExtractionOptions',
    'HydrationThresholds',
    'ProcessorOptions',
]
