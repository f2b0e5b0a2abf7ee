# thumbproxy/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal
from urllib.parse import urlsplit

EDGE_TRANSFORM_PATH = "/cdn-cgi/image"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    enable_request_logging: bool = True

    # Origin
    # Thumbnails are built from <origin_base_url>/<identifier>.<origin_extension>
    origin_base_url: str = "https://cdn.discordapp.com/emojis"
    origin_extension: str = "webp"
    origin_request_size: int = 128  # ?size= hint sent to the origin (it may ignore it)

    # Output
    target_size: int = 50  # thumbnails are contain-fit into target_size x target_size
    resize_method: Literal["lanczos3", "catrom", "triangle", "box", "nearest"] = "lanczos3"
    encode_quality: int = 80  # 70-90 is fine for small icons
    encode_effort: int = 4  # WebP method 0-6, lower = faster, larger output

    # Limits
    max_identifier_length: int = 100
    max_image_bytes: int = 2 * 1024 * 1024  # 2 MiB, applied to Content-Length and to the real body
    max_dimension: int = 2048  # decoded width/height cap
    processing_timeout_seconds: float = 30.0  # whole-request deadline
    # SECURITY: Pillow decompression bomb limit, checked before pixel data is decoded
    decode_max_pixels: int = 16 * 1024 * 1024
    # Total RGBA bytes of all decoded frames of a local animated resize
    decode_max_animated_bytes: int = 256 * 1024 * 1024

    # Animated images
    # "delegate" - resize through the edge image-resizing endpoint (default)
    # "local"    - decode every frame and resize/encode in-process
    animated_strategy: Literal["delegate", "local"] = "delegate"
    # e.g. https://thumbs.example.com/cdn-cgi/image
    # If not set, the origin host's own resizing path is used: <scheme>://<origin-host>/cdn-cgi/image
    edge_transform_base_url: str | None = None
    delegate_quality: int = 80

    # HTTP surface
    allowed_origins: list[str] = ["*"]
    enable_metrics: bool = True

    # Cache policy
    immutable_cache_control: str = "public, max-age=31536000, immutable"
    delegated_cache_control: str = "no-cache"

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def delegate_enabled(self) -> bool:
        return self.animated_strategy == "delegate"

    @property
    def edge_transform_url(self) -> str:
        if self.edge_transform_base_url:
            return self.edge_transform_base_url
        origin = urlsplit(self.origin_base_url)
        return f"{origin.scheme}://{origin.netloc}{EDGE_TRANSFORM_PATH}"


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.animated_strategy == "local":
        warnings.append(
            "animated_strategy=local: every animated frame is decoded and resized in-process."
        )

    if s.max_dimension * s.max_dimension > s.decode_max_pixels:
        warnings.append(
            "decode_max_pixels is smaller than max_dimension^2 "
            "(some in-range images will be rejected by the decoder)."
        )

    if s.is_production and s.log_level.upper() == "DEBUG":
        warnings.append("log_level=DEBUG in production.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    if s.target_size < 1:
        raise RuntimeError("target_size must be a positive integer")
    if s.processing_timeout_seconds <= 0:
        raise RuntimeError("processing_timeout_seconds must be positive")
    if s.delegate_enabled and not urlsplit(s.edge_transform_url).netloc:
        raise RuntimeError("animated_strategy=delegate needs an absolute edge_transform_base_url or origin_base_url")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
