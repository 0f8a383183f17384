"""
Adapter: makes homography functions conform to the ModelFitter Protocol.

This keeps ransac/core.py generic and reusable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .types import Points2D, Mat3x3, FloatArray, ModelFitter
from .homography import (
    MODEL_POINTS, SQR_COLLINEAR_THRESHOLD,
    fit_homography, is_well_spread_subset, reprojection_sq_errors,
)


@dataclass(frozen=True)
class HomographyFitter(ModelFitter[Mat3x3]):
    """
    4-point homography model.

    collinear_threshold:
      cos^2 bound used by the degenerate-subset guard on both point sets.
    """
    collinear_threshold: float = SQR_COLLINEAR_THRESHOLD
    min_samples: int = MODEL_POINTS

    def check_sample(self, pts0: Points2D, pts1: Points2D) -> bool:
        # Both sides must be well spread, otherwise the solve is near-singular
        return (is_well_spread_subset(pts0, self.collinear_threshold)
                and is_well_spread_subset(pts1, self.collinear_threshold))

    def fit_minimal(self, pts0: Points2D, pts1: Points2D) -> Optional[Mat3x3]:
        return fit_homography(pts0, pts1)

    def residuals(self, model: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
        return reprojection_sq_errors(model, pts0, pts1)
