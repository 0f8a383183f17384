"""
RANSAC package

This module provides:
- A reusable generic top-N RANSAC implementation
- Typed geometry primitives and correspondence containers
- Model interface definitions
- The 4-point homography model (normalized DLT + degeneracy guard)
"""

from .types import (
    FloatArray, BoolArray, IntArray, Points2D, PointsHomog, Mask2D, Mat3x3,
    Correspondence, CorrespondenceSet, ModelFitter, ModelResult,
    as_points, as_homogeneous, is_valid_mat3x3,
)

from .homography import (
    MODEL_POINTS, fit_homography, is_well_spread_subset,
    apply_homography, reprojection_sq_errors,
)

from .homography_fitter import HomographyFitter

from .core import ransac_top_models, RansacParams, TopModels, MAX_SUBSET_ATTEMPTS

__all__ = [
    "FloatArray", "BoolArray", "IntArray", "Points2D", "PointsHomog", "Mask2D", "Mat3x3",
    "Correspondence", "CorrespondenceSet", "ModelFitter", "ModelResult",
    "as_points", "as_homogeneous", "is_valid_mat3x3",
    "MODEL_POINTS", "fit_homography", "is_well_spread_subset",
    "apply_homography", "reprojection_sq_errors",
    "HomographyFitter",
    "ransac_top_models", "RansacParams", "TopModels", "MAX_SUBSET_ATTEMPTS",
]
