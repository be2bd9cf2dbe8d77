"""
thumbforge - thumbnail, watermark and overlay generation service.
"""

__version__ = "1.0.0"
