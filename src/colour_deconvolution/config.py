# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""
Configuration
=============
Default tolerances and tiling parameters, overridable from the environment
with the ``COLOUR_DECONV_`` prefix (e.g. ``COLOUR_DECONV_TILE_ROWS=64``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Package settings with environment variable support."""

    model_config = SettingsConfigDict(env_prefix="COLOUR_DECONV_")

    # Stain basis
    vector_epsilon: float = Field(1e-9, gt=0.0)
    determinant_epsilon: float = Field(1e-4, gt=0.0)

    # Pixel processing
    tile_rows: int = Field(256, ge=1)
    workers: Optional[int] = Field(None, ge=1)  # None = os.cpu_count()
    mode: Literal["rgb", "grayscale"] = "rgb"

    # Command line
    user_library: Optional[Path] = None
    verbosity: Literal["quiet", "normal", "debug"] = "normal"


settings = Settings()
