"""
Application configuration settings.
"""

from pathlib import Path
from typing import List, Tuple
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # API Settings
    api_v1_prefix: str = "/api/v1"
    debug: bool = False

    # File Storage
    data_dir: Path = Path("./data")

    # Upload Limits
    max_file_size_mb: int = 25
    allowed_content_types: List[str] = ["image/jpeg", "image/png", "image/bmp", "image/webp"]

    # ============================================================
    # OUTPUT ENCODING
    # ============================================================

    default_jpeg_quality: int = 85            # 1-100, used when a caller omits it
    default_mime_type: str = "image/jpeg"     # Encoder looked up by MIME type

    # ============================================================
    # WATERMARK SETTINGS
    # ============================================================

    # Pixels of exactly this RGB color in the watermark become transparent
    watermark_key_color: Tuple[int, int, int] = (0, 255, 0)
    # Alpha multiplier applied to every remaining watermark pixel
    watermark_opacity: float = 0.3

    # ============================================================
    # TEXT OVERLAY SETTINGS
    # ============================================================

    default_font_name: str = "DejaVuSans.ttf"
    default_font_size: int = 24
    default_text_color: str = "#ffffff"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def outputs_dir(self) -> Path:
        return self.data_dir / "jobs"

    class Config:
        env_prefix = "THUMBFORGE_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()
