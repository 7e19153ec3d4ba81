"""
Overlay rendering for FlowerScope.
"""

from .overlay import OverlayRenderer, OverlayStyle

__all__ = ["OverlayRenderer", "OverlayStyle"]
