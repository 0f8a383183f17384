"""
Geometric sanity checks for a reference rectangle projected into the scene.

A homography can fit a handful of correspondences perfectly and still be
nonsense: collapse the reference to a line, shear it into a sliver, or fold it
over itself. These checks look only at the 4 projected corners (plus the
reference width/height) and reject such shapes before they are reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..ransac.types import DEBUG, Points2D, Mat3x3


@dataclass(frozen=True)
class PlausibilityParams:
    """
    min_edge_px:
      - Every projected edge must be longer than this (pixels).
    edge_ratio_tolerance:
      - Each edge's scale (projected length / reference length) may differ
        from the mean scale of the 4 edges by at most this fraction of it.
    min_angle_deg:
      - Every corner angle must be at least this many degrees.
    max_shear:
      - Optional bound on |H[0,1]| and |H[1,0]|. None disables the check.
    max_projection:
      - Optional bound on |H[2,0]| and |H[2,1]|. None disables the check.
    """
    min_edge_px: float = 10.0
    edge_ratio_tolerance: float = 0.5
    min_angle_deg: float = 30.0
    max_shear: Optional[float] = None
    max_projection: Optional[float] = None


def _edges(quad: Points2D) -> Points2D:
    # edge i runs from corner i to corner i+1 (TL->TR, TR->BR, BR->BL, BL->TL)
    return np.roll(quad, -1, axis=0) - quad


def edge_lengths(quad: Points2D) -> np.ndarray:
    return np.linalg.norm(_edges(quad), axis=1)


def corner_angles_deg(quad: Points2D) -> np.ndarray:
    """
    Angle at each corner between its two adjacent edges, in degrees.

    At corner i the two edge vectors both start at the corner:
        a = quad[i+1] - quad[i]
        b = quad[i-1] - quad[i]
    """
    nxt = _edges(quad)
    prv = np.roll(quad, 1, axis=0) - quad

    norms = np.linalg.norm(nxt, axis=1) * np.linalg.norm(prv, axis=1)
    dots = np.sum(nxt * prv, axis=1)

    cos = np.zeros_like(dots)
    ok = norms > 0
    cos[ok] = dots[ok] / norms[ok]
    # zero-length edges were already rejected by the edge check; treat as flat
    cos[~ok] = 1.0

    return np.degrees(np.arccos(np.clip(cos, -1.0, 1.0)))


def is_plausible_quad(
        quad: Points2D,
        width: float,
        height: float,
        params: PlausibilityParams = PlausibilityParams(),
) -> bool:
    """
    Accept or reject a projected reference rectangle.

    quad: (4,2) corners in reference winding order (TL, TR, BR, BL)
    width, height: reference rectangle size the corners were projected from

    Checks, all must pass:
      1. every edge longer than min_edge_px
      2. every edge scale within edge_ratio_tolerance of the mean edge scale
      3. every corner angle >= min_angle_deg
    """
    quad = np.asarray(quad, dtype=np.float64)
    if quad.shape != (4, 2):
        raise ValueError(f"Expected quad shape (4,2), got {quad.shape}")
    if width <= 0 or height <= 0:
        raise ValueError(f"Reference size must be positive, got {width}x{height}")

    if not np.isfinite(quad).all():
        if DEBUG:
            print("[plaus] non-finite corners")
        return False

    # ---------- 1. minimum edge length ----------
    lengths = edge_lengths(quad)
    if np.any(lengths <= params.min_edge_px):
        if DEBUG:
            print(f"[plaus] edge too short: lengths={np.round(lengths, 1)}, need > {params.min_edge_px}")
        return False

    # ---------- 2. edge-scale consistency ----------
    # compared with the mean scale, not an absolute one
    ref_lengths = np.array([width, height, width, height], dtype=np.float64)
    ratios = lengths / ref_lengths
    mean_ratio = float(ratios.mean())
    if np.any(np.abs(ratios - mean_ratio) > params.edge_ratio_tolerance * mean_ratio):
        if DEBUG:
            print(f"[plaus] inconsistent edge scale: ratios={np.round(ratios, 3)}, mean={mean_ratio:.3f}")
        return False

    # ---------- 3. corner angles ----------
    angles = corner_angles_deg(quad)
    if np.any(angles < params.min_angle_deg):
        if DEBUG:
            print(f"[plaus] corner too sharp: angles={np.round(angles, 1)}, need >= {params.min_angle_deg}")
        return False

    return True


def is_plausible_homography(H: Mat3x3, params: PlausibilityParams = PlausibilityParams()) -> bool:
    """
    Optional matrix-level checks on shear and projective terms.
    Both are off unless the corresponding bound is set.
    """
    if params.max_shear is not None:
        if abs(H[0, 1]) >= params.max_shear or abs(H[1, 0]) >= params.max_shear:
            if DEBUG:
                print(f"[plaus] shear too large: h01={H[0, 1]:.4f}, h10={H[1, 0]:.4f}")
            return False

    if params.max_projection is not None:
        if abs(H[2, 0]) >= params.max_projection or abs(H[2, 1]) >= params.max_projection:
            if DEBUG:
                print(f"[plaus] projection too large: h20={H[2, 0]:.6f}, h21={H[2, 1]:.6f}")
            return False

    return True
