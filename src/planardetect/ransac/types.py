"""
Shared typed primitives for the detection pipeline.

Defines:
- Typed NumPy aliases for geometry
    - Points are (N,2) float arrays
    - Homographies are 3x3 homogeneous matrices
- Correspondence containers (single pair and array form)
- Generic model protocol for RANSAC
- Structured per-trial RANSAC result (model + inlier mask)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, TypeVar, Generic, Optional, TypeAlias
import os

import numpy as np
import numpy.typing as npt

# Debug output for the whole package: PLANARDETECT_DEBUG=1
DEBUG = os.environ.get("PLANARDETECT_DEBUG", "0") == "1"

# ---------- Numpy typing aliases ----------
# - float64 for geometry / matrices (more stable for linear algebra)
# - bool_ for masks

FloatArray: TypeAlias = npt.NDArray[np.float64]
BoolArray: TypeAlias = npt.NDArray[np.bool_]
IntArray: TypeAlias = npt.NDArray[np.intp]

# Points in 2D image coordinates.
Points2D: TypeAlias = FloatArray      # shape: (N, 2)

# Homogeneous points [x, y, 1] for 3x3 transforms.
PointsHomog: TypeAlias = FloatArray   # shape: (N, 3)

# Boolean inlier mask: True as inlier, False as outlier
Mask2D: TypeAlias = BoolArray         # shape: (N,)

# 3x3 homogeneous transform matrix, normalized so that [2, 2] == 1.
Mat3x3: TypeAlias = FloatArray        # shape: (3, 3)

M = TypeVar("M")


# ---------- Correspondences ----------
@dataclass(frozen=True)
class Correspondence:
    """
    One tentative match between a reference point and a scene point.

    index is the position of the match in the caller's own match list, so that
    inlier masks can be mapped back after estimation.
    """
    src: tuple[float, float]
    dst: tuple[float, float]
    index: int


@dataclass(frozen=True)
class CorrespondenceSet:
    """
    Array form of a correspondence list, which is what the estimator works on.

    Row i of src/dst is correspondence i for every mask and index array the
    estimator produces; ids[i] is the caller's original index for that row.
    """
    src: Points2D     # (N, 2)
    dst: Points2D     # (N, 2)
    ids: IntArray     # (N,)

    def __post_init__(self) -> None:
        if self.src.shape != self.dst.shape:
            raise ValueError(f"src and dst must have same shape, got {self.src.shape} vs {self.dst.shape}")
        if self.src.ndim != 2 or self.src.shape[1] != 2:
            raise ValueError(f"Expected points shape (N,2), got {self.src.shape}")
        if self.ids.shape != (self.src.shape[0],):
            raise ValueError(f"ids must have shape ({self.src.shape[0]},), got {self.ids.shape}")

    def __len__(self) -> int:
        return int(self.src.shape[0])

    @classmethod
    def from_arrays(
            cls,
            src: npt.ArrayLike,
            dst: npt.ArrayLike,
            ids: Optional[npt.ArrayLike] = None,
    ) -> "CorrespondenceSet":
        """
        Build from two (N,2) point arrays. ids default to 0..N-1.
        """
        src_arr = as_points(src)
        dst_arr = as_points(dst)
        if src_arr.shape[0] != dst_arr.shape[0]:
            raise ValueError(f"src and dst must have the same length, got {src_arr.shape[0]} vs {dst_arr.shape[0]}")

        if ids is None:
            id_arr = np.arange(src_arr.shape[0], dtype=np.intp)
        else:
            id_arr = np.asarray(ids, dtype=np.intp).reshape(-1)
        return cls(src=src_arr, dst=dst_arr, ids=id_arr)

    @classmethod
    def from_list(cls, correspondences: Iterable[Correspondence]) -> "CorrespondenceSet":
        items = list(correspondences)
        src = np.array([c.src for c in items], dtype=np.float64).reshape(-1, 2)
        dst = np.array([c.dst for c in items], dtype=np.float64).reshape(-1, 2)
        ids = np.array([c.index for c in items], dtype=np.intp)
        return cls(src=src, dst=dst, ids=ids)

    def original_ids(self, mask: Mask2D) -> IntArray:
        """
        Map a positional mask (e.g. ModelResult.inliers) back to caller indices.
        """
        if mask.shape != self.ids.shape:
            raise ValueError(f"mask must have shape {self.ids.shape}, got {mask.shape}")
        return self.ids[mask]


# ---------- Generic model typing ----------
class ModelFitter(Protocol[M]):
    """
    Interface that a model must implement to be usable by the generic RANSAC implementation.

    RANSAC steps:
    1) Check that a drawn minimal sample is usable at all
    2) Fit a model from the minimal sample
    3) Score all correspondences with a per-point residual error
    """

    min_samples: int

    def check_sample(self, pts0: Points2D, pts1: Points2D) -> bool:
        """
        Return False if the minimal sample is degenerate and should be redrawn.
        """
        ...

    def fit_minimal(self, pts0: Points2D, pts1: Points2D) -> Optional[M]:
        """
        Fit from the minimal number of correspondences required.
        Return None if the fit fails numerically.
        """
        ...

    def residuals(self, model: M, pts0: Points2D, pts1: Points2D) -> FloatArray:
        """
        Return a vector of squared residual errors, one per correspondence.
        Shape: (N,). Smaller = better. inf marks a point the model cannot map.
        """
        ...


# ---------- RANSAC output container ----------
# One record per successful RANSAC trial; immutable once created.
@dataclass(frozen=True)
class ModelResult(Generic[M]):
    indices: IntArray     # minimal subset row indices (4 for homography)
    homography: M         # fitted model
    inlier_count: int     # count of True values in inliers
    inliers: Mask2D       # boolean mask over the full correspondence set


# ---------- Helper Function ----------
def as_points(pts: npt.ArrayLike) -> Points2D:
    """
    Coerce to a (N,2) float64 array. Accepts OpenCV-style (N,1,2) input.
    """
    arr = np.asarray(pts, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    if arr.ndim == 3 and arr.shape[1] == 1:
        arr = arr.reshape(-1, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Expected points shape (N, 2) but got {arr.shape}")
    return arr


def as_homogeneous(pts: Points2D) -> PointsHomog:
    """
    Convert (N,2) points -> (N,3) homogeneous points: [x, y, 1].
    """
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected points shape (N, 2) but got {pts.shape}")

    ones = np.ones((pts.shape[0], 1), dtype=np.float64)
    return np.hstack([pts.astype(np.float64), ones])


def is_valid_mat3x3(T: Mat3x3) -> bool:
    """
    Verify a 3x3 transform matrix.
    Used for rejecting failed fits.
    """
    return isinstance(T, np.ndarray) and T.shape == (3, 3) and bool(np.isfinite(T).all())
