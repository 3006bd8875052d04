"""
Configuration system for the hydration engine.

Provides structured configuration using dataclasses with clear defaults:
the heuristic thresholds shared by every clustering stage, extraction
options, engine resource limits, and export options.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


def _filter_known_keys(cls, config: Dict[str, Any]) -> Dict[str, Any]:
    """Keep keys that are dataclass fields of `cls`, warning about the rest."""
    valid_keys = {f.name for f in fields(cls)}
    filtered = {}
    for key, value in config.items():
        if key in valid_keys:
            filtered[key] = value
        else:
            logger.warning(f"Unknown config key '{key}' will be ignored")
    return filtered


@dataclass(frozen=True)
class HydrationThresholds:
    """
    Every tunable constant used by the clustering heuristics.

    Ratios are relative to a line's own height unless noted; pixel values
    are page pixels at scale 1.0.
    """
    # Line clustering
    line_y_tolerance_ratio: float = 0.3

    # Paragraph grouping
    paragraph_break_ratio: float = 1.5
    heading_break_ratio: float = 2.5
    header_font_ratio: float = 1.2

    # Columns
    column_gap_px: float = 50.0

    # Separators
    separator_thinness_px: float = 5.0
    separator_min_length_px: float = 50.0

    # Images
    min_image_size_px: float = 5.0

    # Tables
    table_min_rows: int = 2
    table_min_columns: int = 2
    table_align_tolerance_px: float = 10.0
    table_separator_cluster_px: float = 3.0
    table_separator_spacing_ratio: float = 6.0
    table_row_merge_ratio: float = 1.0

    # Alignment inference (fractions of column width)
    alignment_edge_variation_ratio: float = 0.2
    alignment_midpoint_tolerance_ratio: float = 0.02

    # Font statistics
    stats_sample_pages: int = 10
    stats_min_runs: int = 5
    default_font_size: float = 12.0
    default_line_height: float = 14.0
    grid_bin_px: float = 10.0
    grid_peak_share: float = 0.1

    # Caption scoring
    caption_max_chars: int = 50
    caption_score_threshold: float = 0.4
    caption_reference_text: str = "Figure 1 description"

    # Text device: a TJ displacement wider than this many font sizes starts a new item
    tj_split_ratio: float = 1.0

    def validate(self) -> bool:
        """
        Validate threshold values.

        Returns:
            True if configuration is valid, False otherwise
        """
        if self.line_y_tolerance_ratio <= 0:
            logger.error("line_y_tolerance_ratio must be positive")
            return False

        if self.heading_break_ratio < self.paragraph_break_ratio:
            logger.error("heading_break_ratio must be >= paragraph_break_ratio")
            return False

        if self.table_min_rows < 2 or self.table_min_columns < 2:
            logger.error("tables need at least 2 rows and 2 columns")
            return False

        if self.stats_sample_pages < 1:
            logger.error("stats_sample_pages must be at least 1")
            return False

        if self.default_font_size <= 0 or self.default_line_height <= 0:
            logger.error("default font metrics must be positive")
            return False

        if not 0 <= self.caption_score_threshold <= 1:
            logger.error("caption_score_threshold must be within [0, 1]")
            return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'HydrationThresholds':
        """Create thresholds from a dictionary, ignoring unknown keys."""
        return cls(**_filter_known_keys(cls, config))


@dataclass
class ProcessorOptions:
    """
    Base class for processor-specific configuration options.

    All processor option classes should inherit from this to provide
    consistent interface and common functionality.
    """
    enabled: bool = True
    timeout_seconds: Optional[int] = None  # Override engine timeout if set

    def validate(self) -> bool:
        """
        Validate configuration options.

        Returns:
            True if configuration is valid, False otherwise
        """
        if self.timeout_seconds is not None and self.timeout_seconds < 0:
            logger.error("timeout_seconds must be non-negative")
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'enabled': self.enabled,
            'timeout_seconds': self.timeout_seconds
        }


@dataclass
class ExtractionOptions(ProcessorOptions):
    """
    Options for operator-list driven extraction (separators and images).
    """
    decode_image_data: bool = True  # False defers pixel decoding, blob stays None
    include_inline_images: bool = True
    max_form_depth: int = 8  # Nested Form XObject limit
    max_image_pixels: int = 40_000_000  # Larger images are skipped

    def validate(self) -> bool:
        if not super().validate():
            return False
        if self.max_form_depth < 0:
            logger.error("max_form_depth must be non-negative")
            return False
        if self.max_image_pixels < 1:
            logger.error("max_image_pixels must be positive")
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        base_dict = super().to_dict()
        base_dict.update({
            'decode_image_data': self.decode_image_data,
            'include_inline_images': self.include_inline_images,
            'max_form_depth': self.max_form_depth,
            'max_image_pixels': self.max_image_pixels,
        })
        return base_dict


@dataclass
class EngineConfig:
    """
    Central configuration for document hydration.

    Example:
        >>> config = EngineConfig(max_file_size_mb=20)
        >>> pages = hydrate_document(data, config=config)
    """

    thresholds: HydrationThresholds = field(default_factory=HydrationThresholds)
    extraction: ExtractionOptions = field(default_factory=ExtractionOptions)

    # Resource limits
    timeout_seconds: int = 300
    max_file_size_mb: int = 50
    max_memory_mb: int = 1000

    # Validation
    validate_on_open: bool = True

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if all values are valid, False otherwise
        """
        if self.timeout_seconds < 1:
            logger.error("timeout_seconds must be at least 1 second")
            return False

        if self.max_file_size_mb < 1:
            logger.error("max_file_size_mb must be at least 1 MB")
            return False

        if self.max_memory_mb < 64:
            logger.error("max_memory_mb must be at least 64 MB")
            return False

        return self.thresholds.validate() and self.extraction.validate()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Useful for serialization, logging, and debugging.
        """
        return {
            'thresholds': self.thresholds.to_dict(),
            'extraction': self.extraction.to_dict(),
            'timeout_seconds': self.timeout_seconds,
            'max_file_size_mb': self.max_file_size_mb,
            'max_memory_mb': self.max_memory_mb,
            'validate_on_open': self.validate_on_open,
        }

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'EngineConfig':
        """
        Create EngineConfig from dictionary.

        Nested `thresholds` and `extraction` dictionaries are converted to
        their dataclasses. Unknown keys are ignored with a warning.

        Args:
            config: Dictionary of configuration values

        Returns:
            EngineConfig instance
        """
        filtered_config = _filter_known_keys(cls, config)

        thresholds = filtered_config.get('thresholds')
        if isinstance(thresholds, dict):
            filtered_config['thresholds'] = HydrationThresholds.from_dict(thresholds)

        extraction = filtered_config.get('extraction')
        if isinstance(extraction, dict):
            filtered_config['extraction'] = ExtractionOptions(**_filter_known_keys(ExtractionOptions, extraction))

        return cls(**filtered_config)

    @classmethod
    def default(cls) -> 'EngineConfig':
        """Create configuration with default values."""
        return cls()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"EngineConfig("
            f"decode_images={self.extraction.decode_image_data}, "
            f"max_size={self.max_file_size_mb}MB, "
            f"timeout={self.timeout_seconds}s)"
        )


@dataclass
class ExportOptions:
    """Options for rebuilding a document from the hydrated model."""
    line_height_ratio: float = 1.2
    raster_scale: float = 2.0
    draw_table_borders: bool = True
    table_border_width: float = 0.5
    table_cell_padding: float = 2.0
    curve_segments: int = 8  # Samples per curve when linearizing freehand paths
    default_annotation_font_size: float = 14.0

    def validate(self) -> bool:
        if self.line_height_ratio <= 0:
            logger.error("line_height_ratio must be positive")
            return False
        if self.raster_scale <= 0:
            logger.error("raster_scale must be positive")
            return False
        if self.curve_segments < 1:
            logger.error("curve_segments must be at least 1")
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

