"""
webp_recompress

Finds the lowest WebP quality whose output is perceptually indistinguishable from a
JPEG source (1 - SSIM within a threshold) and smaller than it. PNG sources are
re-encoded as lossless WebP without a search.
"""
from .search import RecompressResult, webp_recompress

__all__ = ["RecompressResult", "webp_recompress"]
