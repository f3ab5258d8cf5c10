"""
Pydantic models for scan cleanup configuration.

Defines the configuration schemas, with validation and defaults, for page
analysis, speck removal, batch processing and logging.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

RGBColor = Tuple[int, int, int]

MAGENTA: RGBColor = (255, 0, 255)
WHITE: RGBColor = (255, 255, 255)


class LogLevel(str, Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Connectivity(str, Enum):
    """Pixel adjacency used when growing graphemes."""
    FOUR = "four"
    EIGHT = "eight"


class LabelingBackend(str, Enum):
    """Implementation used to label connected graphemes."""
    FLOOD_FILL = "flood_fill"
    OPENCV = "opencv"


def _validate_rgb(v):
    if len(v) != 3:
        raise ValueError("RGB color must have exactly 3 values")
    if not all(0 <= c <= 255 for c in v):
        raise ValueError("RGB color values must be between 0 and 255")
    return tuple(v)


class AnalysisConfig(BaseModel):
    """Thresholds that decide which pixels are background and how ink is grouped.

    Changing any of these requires the page to be analyzed again.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    off_white_threshold: int = Field(
        default=240,
        ge=0,
        le=255,
        description="Pixels with a mean channel value at or above this are background"
    )
    lightness_threshold: int = Field(
        default=100,
        ge=0,
        le=255,
        description="Pixels at or above this are background unless a darker pixel is nearby"
    )
    lightness_distance: int = Field(
        default=1,
        ge=0,
        description="Half-width of the window searched for a darker neighbour"
    )
    connectivity: Connectivity = Field(
        default=Connectivity.FOUR,
        description="Pixel adjacency for grapheme growth"
    )
    backend: LabelingBackend = Field(
        default=LabelingBackend.FLOOD_FILL,
        description="Grapheme labeling implementation"
    )


class CleanupConfig(BaseModel):
    """Thresholds and colors used to remove specks from an analyzed page.

    These can change without re-analyzing the page.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    speck_size_threshold: int = Field(
        default=15,
        ge=0,
        description="Graphemes with this many pixels or fewer are removed"
    )
    speck_lightness_threshold: int = Field(
        default=255,
        ge=0,
        le=255,
        description="Graphemes with a mean value above this are removed (255 disables)"
    )
    page_margins: Tuple[int, int] = Field(
        default=(50, 50),
        description="Horizontal and vertical margin bands in pixels"
    )
    isolation_size_threshold: int = Field(
        default=80,
        ge=0,
        description="Graphemes smaller than this need a nearby anchor to survive"
    )
    isolation_distance_threshold: int = Field(
        default=50,
        ge=0,
        description="Bounding box edge distance within which an anchor counts as near"
    )
    speck_fill_color: RGBColor = Field(
        default=WHITE,
        description="RGB color painted over removed graphemes"
    )
    background_fill_color: RGBColor = Field(
        default=WHITE,
        description="RGB color painted over background pixels"
    )

    @field_validator('page_margins')
    @classmethod
    def validate_page_margins(cls, v):
        """Margins are non-negative pixel counts."""
        if any(m < 0 for m in v):
            raise ValueError("Page margins must be non-negative")
        return v

    @field_validator('speck_fill_color', 'background_fill_color')
    @classmethod
    def validate_fill_color(cls, v):
        """Validate RGB color values."""
        return _validate_rgb(v)

    def preview(self, speck_fill_color: RGBColor = MAGENTA) -> "CleanupConfig":
        """Return a copy that paints specks in a visible color."""
        return self.model_copy(update={"speck_fill_color": speck_fill_color})


class BatchConfig(BaseModel):
    """Configuration for processing many pages."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    output_dir: Optional[str] = Field(
        default=None,
        description="Directory for cleaned pages; None overwrites the input files"
    )
    output_suffix: str = Field(
        default="",
        description="Suffix appended to the file stem of each cleaned page"
    )
    jpeg_quality: int = Field(
        default=95,
        ge=0,
        le=100,
        description="Encoder quality for JPEG output"
    )
    parallel: bool = Field(
        default=False,
        description="Process pages in worker processes"
    )
    max_workers: Optional[int] = Field(
        default=None,
        gt=0,
        description="Worker process count (default: CPU count - 1)"
    )
    save_debug_images: bool = Field(
        default=False,
        description="Write background mask and classification overlays"
    )
    debug_dir: Optional[str] = Field(
        default=None,
        description="Directory for debug images"
    )

    @field_validator('output_dir', 'debug_dir')
    @classmethod
    def validate_directory_path(cls, v):
        """Validate directory path format."""
        if v is None:
            return v
        if not v:
            raise ValueError("Directory path must be a non-empty string")
        return v.replace('\\', '/')


class LoggingConfig(BaseModel):
    """Configuration for logging setup."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Base logging level"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )
    use_rich: bool = Field(
        default=True,
        description="Whether to use rich console output"
    )
    format_style: str = Field(
        default="detailed",
        pattern="^(simple|detailed|minimal)$",
        description="Logging format style"
    )


class Config(BaseModel):
    """Main configuration model for scan cleanup."""

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        use_enum_values=False,
    )

    analysis: AnalysisConfig = Field(
        default_factory=AnalysisConfig,
        description="Background and grapheme analysis configuration"
    )
    cleanup: CleanupConfig = Field(
        default_factory=CleanupConfig,
        description="Speck removal configuration"
    )
    batch: BatchConfig = Field(
        default_factory=BatchConfig,
        description="Batch processing configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration"
    )

    version: str = Field(
        default="1.0.0",
        description="Configuration version"
    )
    description: Optional[str] = Field(
        default=None,
        description="Configuration description"
    )
