"""
Runtime configuration for docflow.

Holds the knobs shared by processors (render resolution, image quality,
worker pool size) and the logging setup. Provides a unified configuration
that flows through the processors.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class RuntimeConfig:
    """
    Runtime configuration for processors.

    Attributes:
        render_dpi: Resolution used when rasterizing pages
        image_quality: JPEG quality (1-100) for recompressed/rendered images
        max_image_dimension: Longest side for downscaled images during compression
        parallel_workers: Worker threads for per-image work
        log_level: Logging level name
        verbose: Print debug information
    """

    render_dpi: int = 150
    image_quality: int = 85
    max_image_dimension: int = 2000

    # Parallelism
    parallel_workers: int = 4

    # Debug
    log_level: str = "WARNING"
    verbose: bool = False

    def __post_init__(self):
        """Keep values in usable ranges."""
        self.render_dpi = max(36, min(600, int(self.render_dpi)))
        self.image_quality = max(1, min(100, int(self.image_quality)))
        self.max_image_dimension = max(64, int(self.max_image_dimension))
        self.parallel_workers = max(1, int(self.parallel_workers))
        if self.verbose:
            self.log_level = "DEBUG"


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def get_runtime_config(
    render_dpi: int | None = None,
    image_quality: int | None = None,
    parallel_workers: int | None = None,
    verbose: bool = False,
) -> RuntimeConfig:
    """
    Create a runtime configuration from defaults, environment and overrides.

    Environment variables (DOCFLOW_RENDER_DPI, DOCFLOW_IMAGE_QUALITY,
    DOCFLOW_MAX_IMAGE_DIMENSION, DOCFLOW_WORKERS, DOCFLOW_LOG_LEVEL) are
    applied first; explicit arguments win.

    Args:
        render_dpi: Override render resolution
        image_quality: Override JPEG quality
        parallel_workers: Override worker count
        verbose: Enable verbose output

    Returns:
        Configured RuntimeConfig instance
    """
    kwargs: dict = {}
    env_map = {
        "render_dpi": "DOCFLOW_RENDER_DPI",
        "image_quality": "DOCFLOW_IMAGE_QUALITY",
        "max_image_dimension": "DOCFLOW_MAX_IMAGE_DIMENSION",
        "parallel_workers": "DOCFLOW_WORKERS",
    }
    for field_name, env_name in env_map.items():
        value = _env_int(env_name)
        if value is not None:
            kwargs[field_name] = value

    log_level = os.environ.get("DOCFLOW_LOG_LEVEL")
    if log_level:
        kwargs["log_level"] = log_level.upper()

    if render_dpi is not None:
        kwargs["render_dpi"] = render_dpi
    if image_quality is not None:
        kwargs["image_quality"] = image_quality
    if parallel_workers is not None:
        kwargs["parallel_workers"] = parallel_workers

    return RuntimeConfig(verbose=verbose, **kwargs)


def configure_logging(level: str | int = "WARNING") -> None:
    """Configure the root `docflow` logger with a stderr handler."""
    logger = logging.getLogger("docflow")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


# Global config instance (can be set by CLI/web server)
_global_config: RuntimeConfig | None = None


def set_global_config(config: RuntimeConfig) -> None:
    """Set the global runtime configuration."""
    global _global_config
    _global_config = config


def get_global_config() -> RuntimeConfig:
    """Get the global runtime configuration, creating it on first use."""
    global _global_config
    if _global_config is None:
        _global_config = get_runtime_config()
    return _global_config


def reset_global_config() -> None:
    """Drop the global configuration so the next access rebuilds it."""
    global _global_config
    _global_config = None
