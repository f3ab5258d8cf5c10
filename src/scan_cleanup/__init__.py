"""Speck and background noise removal for scanned document pages."""

__version__ = "1.0.0"
__author__ = "Scan Cleanup Team"

from .pipeline import CleanupPipeline, BatchResult, PageResult

__all__ = ["CleanupPipeline", "BatchResult", "PageResult"]
