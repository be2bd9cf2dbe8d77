"""
API route modules.
"""

from thumbforge.routes.derivatives import router as derivatives_router
from thumbforge.routes.images import router as images_router

__all__ = [
    "derivatives_router",
    "images_router",
]
