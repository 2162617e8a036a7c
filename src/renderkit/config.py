"""Configuration model for the renderkit pipeline.

Provides ``RenderConfig`` with all tunable parameters and sensible
defaults.  Supports loading overrides from YAML or JSON files via the
``from_file()`` classmethod.
"""

from __future__ import annotations

import json
import pathlib

from pydantic import BaseModel, Field

from renderkit.models import ImageFormat


class RenderConfig(BaseModel):
    """All tunable parameters with sensible defaults.

    Override individual values via constructor kwargs or load a complete
    config from a file with ``RenderConfig.from_file(path)``.
    """

    # --- Identity ---
    renderer_version: str = "renderkit:1.0.0"

    # --- Output ---
    default_format: ImageFormat = ImageFormat.PNG
    fallback_format: ImageFormat | None = ImageFormat.PNG
    default_quality: float = Field(default=0.8, ge=0.0, le=1.0)
    include_metadata: bool = True
    auto_extension: bool = True

    # --- Geometry ---
    default_background: str | None = None  # None keeps the canvas transparent
    max_canvas_width: int = 16384
    max_canvas_height: int = 16384
    vector_default_size: int = 100  # used when markup declares no size

    # --- Filters ---
    optimize_filters: bool = True
    noise_seed: int | None = None

    # --- Sources ---
    http_timeout_seconds: float = 30.0
    max_source_size_mb: int = 50

    # --- Logging / Privacy ---
    log_source_data: bool = False

    @classmethod
    def from_file(cls, path: str) -> RenderConfig:
        """Load configuration from a YAML or JSON file.

        File format is detected by extension: ``.yaml`` / ``.yml`` for YAML,
        ``.json`` for JSON.  Any keys present in the file override the
        corresponding defaults; keys not present retain their defaults.
        """
        file_path = pathlib.Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = file_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            try:
                import yaml  # type: ignore[import-untyped]
            except ImportError as exc:
                raise ImportError(
                    "pyyaml is required to load YAML config files. "
                    "Install it with: pip install pyyaml"
                ) from exc
            with open(file_path) as fh:
                data = yaml.safe_load(fh)
        elif suffix == ".json":
            with open(file_path) as fh:
                data = json.load(fh)
        else:
            raise ValueError(
                f"Unsupported config file extension '{suffix}'. "
                "Use .yaml, .yml, or .json."
            )

        if data is None:
            data = {}

        return cls(**data)
