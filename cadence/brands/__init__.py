"""Brands and their video configuration."""

from cadence.brands.models import DEFAULT_VIDEO_CONFIG, Brand, BrandVideoConfig
from cadence.brands.store import BrandNotFoundError, get_brand_store, update_video_config

__all__ = [
    "DEFAULT_VIDEO_CONFIG",
    "Brand",
    "BrandNotFoundError",
    "BrandVideoConfig",
    "get_brand_store",
    "update_video_config",
]
