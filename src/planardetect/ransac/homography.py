"""
Homography model utilities (3x3 projective form).

We estimate a homography H such that:

    w * [x', y', 1]^T  =  H @ [x, y, 1]^T

where:

    H = [[h0, h1, h2],
         [h3, h4, h5],
         [h6, h7, h8]]

The 9 entries are only defined up to scale, so the result is normalized to
h8 == 1. Solved with the normalized Direct Linear Transform (DLT):
each correspondence gives 2 linear equations in the 9 unknowns, the
normal-equations matrix L^T L is accumulated and its eigenvector with the
smallest eigenvalue is the solution.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .types import Points2D, PointsHomog, Mat3x3, FloatArray, as_homogeneous, is_valid_mat3x3

MODEL_POINTS = 4

# cos^2 of ~10.6 degrees; a triple whose angle is sharper than that is "collinear"
SQR_COLLINEAR_THRESHOLD = 0.966

_EPS = float(np.finfo(np.float64).eps)


# ---------- Degeneracy Check ----------
def is_well_spread_subset(pts: Points2D, threshold: float = SQR_COLLINEAR_THRESHOLD) -> bool:
    """
    Check that no three of the 4 points are nearly collinear.

    For every triple (i > j > k), with vertex i:
        d1 = p_j - p_i
        d2 = p_k - p_i
        cos^2(angle) = dot(d1, d2)^2 / (|d1|^2 * |d2|^2)

    Reject when cos^2 > threshold. The division is avoided by comparing
    dot^2 against threshold * (|d1|^2 * |d2|^2).
    """
    if pts.shape != (MODEL_POINTS, 2):
        raise ValueError(f"Expected ({MODEL_POINTS},2) subset, got {pts.shape}")

    count = pts.shape[0]
    for i in range(2, count):
        for j in range(i):
            d1 = pts[j] - pts[i]
            norm1 = float(d1[0] * d1[0] + d1[1] * d1[1])

            for k in range(j):
                d2 = pts[k] - pts[i]
                norm = float(d2[0] * d2[0] + d2[1] * d2[1]) * norm1
                dot = float(d1[0] * d2[0] + d1[1] * d2[1])

                if dot * dot > threshold * norm:
                    return False
    return True


# ---------- Normalization ----------
def _l1_normalization(pts: Points2D) -> Optional[tuple[FloatArray, FloatArray]]:
    """
    Return (mean, scale) for a point set.

    scale = N / sum(|p - mean|), per axis, so the normalized points have a
    mean absolute deviation of 1. None if the spread is numerically zero
    (all points coincide along an axis).
    """
    mean = pts.mean(axis=0)
    spread = np.abs(pts - mean).sum(axis=0)

    if spread[0] < _EPS or spread[1] < _EPS:
        return None

    return mean, pts.shape[0] / spread


# ---------- Homography Fitting ----------
def fit_homography(pts0: Points2D, pts1: Points2D) -> Optional[Mat3x3]:
    """
    Fit a homography from N >= 4 correspondences pts0 -> pts1.

    Exact for 4 points, least-squares (algebraic error) for more.

    Returns:
      3x3 homography with H[2,2] == 1, or None if degenerate / solve fails.
    """
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    if pts0.ndim != 2 or pts0.shape[1] != 2:
        raise ValueError(f"Expected pts shape (N,2), got {pts0.shape}")

    n = pts0.shape[0]
    if n < MODEL_POINTS:
        return None

    src_norm = _l1_normalization(pts0)
    dst_norm = _l1_normalization(pts1)
    if src_norm is None or dst_norm is None:
        return None

    src_mean, src_scale = src_norm
    dst_mean, dst_scale = dst_norm

    # Maps normalized destination coordinates back to pixels
    inv_dst_T = np.array(
        [
            [1.0 / dst_scale[0], 0.0, dst_mean[0]],
            [0.0, 1.0 / dst_scale[1], dst_mean[1]],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )
    # Maps source pixels into normalized coordinates
    src_T = np.array(
        [
            [src_scale[0], 0.0, -src_mean[0] * src_scale[0]],
            [0.0, src_scale[1], -src_mean[1] * src_scale[1]],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )

    # Normal equations: accumulate L^T L over both DLT rows of each point.
    #   Lx = [x, y, 1, 0, 0, 0, -x'x, -x'y, -x']
    #   Ly = [0, 0, 0, x, y, 1, -y'x, -y'y, -y']
    LtL = np.zeros((9, 9), dtype=np.float64)

    for i in range(n):
        x = (pts0[i, 0] - src_mean[0]) * src_scale[0]
        y = (pts0[i, 1] - src_mean[1]) * src_scale[1]
        x_prime = (pts1[i, 0] - dst_mean[0]) * dst_scale[0]
        y_prime = (pts1[i, 1] - dst_mean[1]) * dst_scale[1]

        Lx = np.array([x, y, 1.0, 0.0, 0.0, 0.0, -x_prime * x, -x_prime * y, -x_prime])
        Ly = np.array([0.0, 0.0, 0.0, x, y, 1.0, -y_prime * x, -y_prime * y, -y_prime])

        # upper triangle only
        LtL += np.triu(np.outer(Lx, Lx) + np.outer(Ly, Ly))

    # mirror to a full symmetric matrix
    LtL = LtL + np.triu(LtL, 1).T

    # eigh returns eigenvalues in ascending order, column 0 is the smallest
    try:
        _, eigen_vectors = np.linalg.eigh(LtL)
    except np.linalg.LinAlgError:
        return None

    H0 = eigen_vectors[:, 0].reshape(3, 3)

    H = inv_dst_T @ H0 @ src_T

    norm = H[2, 2]
    if abs(norm) < _EPS:
        # maps the origin to infinity
        return None
    H = H / norm

    if not is_valid_mat3x3(H):
        return None
    if abs(np.linalg.det(H)) < _EPS:
        return None
    return H


# ---------- Apply transform + residuals ----------
def _project_homogeneous(H: Mat3x3, pts: Points2D) -> PointsHomog:
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected pts shape (N,2), got {pts.shape}")
    if H.shape != (3, 3):
        raise ValueError(f"Expected H shape (3,3), got {H.shape}")

    # Each point is a row, so multiply by H^T
    return as_homogeneous(pts) @ H.T


def apply_homography(H: Mat3x3, pts: Points2D) -> Points2D:
    """
    Apply a 3x3 homography to (N,2) points, returning (N,2) points.

        [x', y'] = [xh / wh, yh / wh]

    Points whose homogeneous denominator is (near) zero map to infinity;
    those rows are returned as NaN.
    """
    ph_t = _project_homogeneous(H, pts)
    w = ph_t[:, 2]

    out = np.full((pts.shape[0], 2), np.nan, dtype=np.float64)
    valid = np.abs(w) > _EPS
    out[valid] = ph_t[valid, :2] / w[valid, None]
    return out


def reprojection_sq_errors(H: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    """
    Compute per-point squared reprojection error in pixels^2:

        e_i = || apply_homography(H, pts0[i]) - pts1[i] ||^2

    A point that projects to infinity gets inf, so it is always an outlier.
    Returns shape (N,)
    """
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")

    predicted = apply_homography(H, pts0)
    diff = predicted - pts1.astype(np.float64)
    err = np.sum(diff * diff, axis=1)

    # NaN rows (denominator underflow) and overflow both become inf
    err[~np.isfinite(err)] = np.inf
    return err.astype(np.float64)
