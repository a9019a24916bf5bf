"""Environment-based configuration for RiceDoctor."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from RICEDOCTOR_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RICEDOCTOR_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model artifact: a local file wins; otherwise download from the Hub
    model_path: str = "models/rice_disease_model.onnx"
    models_dir: str = "models"
    model_repo_id: str | None = None
    model_filename: str = "rice_disease_model.onnx"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency (one in-flight inference by default)
    max_concurrent: int = Field(default=1, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Preprocessing
    image_size: int = Field(default=224, ge=1)
    jpeg_quality: int = Field(default=95, ge=1, le=100)

    # History
    history_max_entries: int = Field(default=20, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
