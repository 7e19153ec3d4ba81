"""
Configuration management for FlowerScope.

Provides centralized configuration handling with support for:
- Model asset paths and tensor shape contract
- Image decode bounds
- Detection thresholds and overlay styling
"""

from .config import Config

__all__ = ["Config"]
