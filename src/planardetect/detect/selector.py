"""
Multi-instance selection over ranked RANSAC models.

RANSAC returns several well-supported models, and many of them describe the
same physical object (different minimal subsets landing on the same inliers).
The selector walks the models best-first and accepts a model only if it does
not reuse any correspondence an accepted model already explains:

    claimed = all False
    for model in ranked:
        skip if any sample index is claimed
        skip if any inlier is claimed
        project reference rectangle, skip if implausible
        accept, claimed |= model.inliers

Two copies of the same reference in one scene have disjoint inlier sets, so
both survive; two near-duplicate models of one copy do not.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, Optional, Sequence

import numpy as np

from ..ransac.types import DEBUG, Points2D, Mat3x3, Mask2D, ModelResult
from ..ransac.homography import apply_homography
from .plausibility import PlausibilityParams, is_plausible_quad, is_plausible_homography


@dataclass(frozen=True)
class DetectionCandidate:
    """
    One accepted instance of a reference in the scene.

    corners: (4,2) scene-space corners of the reference rectangle, ordered
             top-left, top-right, bottom-right, bottom-left of the reference.
    """
    label: Hashable
    corners: Points2D
    homography: Mat3x3
    inlier_count: int


def reference_corners(width: float, height: float) -> Points2D:
    """
    Corners of the reference rectangle (TL, TR, BR, BL) in its own pixel space.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Reference size must be positive, got {width}x{height}")
    return np.array(
        [
            [0.0, 0.0],
            [width, 0.0],
            [width, height],
            [0.0, height],
        ],
        dtype=np.float64,
    )


def select_instances(
        models: Sequence[ModelResult[Mat3x3]],
        width: float,
        height: float,
        *,
        label: Hashable = None,
        params: PlausibilityParams = PlausibilityParams(),
        max_instances: Optional[int] = None,
) -> list[DetectionCandidate]:
    """
    Greedily accept non-overlapping, plausible models in rank order.

    Inputs:
    - models: ranked ModelResults (descending inlier count), all over the same
      correspondence set
    - width, height: reference rectangle size
    - label: opaque identity attached to every candidate
    - params: plausibility thresholds
    - max_instances: optional cap on the number of candidates

    Returns:
    - list of DetectionCandidate; no two share an inlier correspondence.
    """
    rect = reference_corners(width, height)
    if not models:
        return []

    n = models[0].inliers.shape[0]
    for m in models:
        if m.inliers.shape != (n,):
            raise ValueError(f"All inlier masks must have shape ({n},), got {m.inliers.shape}")

    # correspondences owned by an accepted model
    claimed: Mask2D = np.zeros((n,), dtype=bool)
    candidates: list[DetectionCandidate] = []

    for rank, model in enumerate(models):
        if max_instances is not None and len(candidates) >= max_instances:
            break

        # Cheap pre-check before any projection
        if claimed[model.indices].any():
            if DEBUG:
                print(f"[select] rank {rank}: sample already claimed, skip")
            continue
        if (claimed & model.inliers).any():
            if DEBUG:
                print(f"[select] rank {rank}: shares inliers with an accepted model, skip")
            continue

        H = model.homography
        corners = apply_homography(H, rect)

        if not is_plausible_homography(H, params) or not is_plausible_quad(corners, width, height, params):
            if DEBUG:
                print(f"[select] rank {rank}: implausible, discard")
            continue

        candidates.append(DetectionCandidate(
            label=label,
            corners=corners,
            homography=H,
            inlier_count=model.inlier_count,
        ))
        # claim everything this model explains, not just its sample
        claimed |= model.inliers

        if DEBUG:
            print(f"[select] rank {rank}: accepted, inliers={model.inlier_count}, "
                  f"claimed={int(np.count_nonzero(claimed))}/{n}")

    return candidates
