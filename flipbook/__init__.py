"""Watermark layout engine and PDF page rasterization for FlipBook DRM."""

__version__ = "1.0.0"
