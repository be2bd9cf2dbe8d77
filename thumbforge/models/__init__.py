"""
Pydantic models for request/response schemas.
"""

from thumbforge.models.responses import (
    Operation,
    RectangleInfo,
    PlacementInfo,
    DerivativeResponse,
    ErrorDetail,
    ErrorResponse,
)

__all__ = [
    "Operation",
    "RectangleInfo",
    "PlacementInfo",
    "DerivativeResponse",
    "ErrorDetail",
    "ErrorResponse",
]
