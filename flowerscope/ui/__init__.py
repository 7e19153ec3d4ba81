"""
Streamlit user interface for FlowerScope.

Provides a single page for:
- Picking one photo
- Viewing both detection layers on the image
- Reading the flower summary and status messages
"""

from .app import FlowerScopeApp

__all__ = ["FlowerScopeApp"]
