"""
Detection pipeline: frame features + references -> detection candidates

One detection pass = RANSAC (top-N models) + multi-instance selection, for one
reference against one frame. Passes for different references only read the
shared frame features, so they run concurrently and are joined before the
combined frame result is returned.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Hashable, Optional, Sequence

import numpy as np

from ..ransac.types import DEBUG, CorrespondenceSet
from ..ransac.core import ransac_top_models, RansacParams
from ..ransac.homography_fitter import HomographyFitter
from ..matching.features import (
    ImageFeatures, FeatureParams, detect_and_compute, REFERENCE_SCALE_FACTOR, FRAME_SCALE_FACTOR,
)
from ..matching.matcher import MatchParams, find_good_matches, build_correspondences
from .plausibility import PlausibilityParams
from .selector import DetectionCandidate, select_instances


@dataclass(frozen=True)
class ReferenceImage:
    """
    A registered reference: its label and its (immutable) template features.
    The reference rectangle is the full extent of the image the features
    were extracted from.
    """
    label: Hashable
    features: ImageFeatures

    @classmethod
    def from_image(
            cls,
            label: Hashable,
            image: np.ndarray,
            *,
            params: FeatureParams = FeatureParams(scale_factor=REFERENCE_SCALE_FACTOR),
    ) -> "ReferenceImage":
        return cls(label=label, features=detect_and_compute(image, params=params))

    @property
    def width(self) -> int:
        return self.features.width

    @property
    def height(self) -> int:
        return self.features.height


@dataclass(frozen=True)
class DetectionParams:
    """
    Everything a detection pass needs.

    seed:
      - Base seed; the pass for reference i uses seed + i, so results do not
        depend on thread scheduling.
    max_workers:
      - Thread count for the per-reference fan-out. None lets the executor decide.
    max_instances:
      - Optional cap on detections per reference.
    """
    ransac: RansacParams = field(default_factory=RansacParams)
    plausibility: PlausibilityParams = field(default_factory=PlausibilityParams)
    matching: MatchParams = field(default_factory=MatchParams)
    features: FeatureParams = field(default_factory=lambda: FeatureParams(scale_factor=FRAME_SCALE_FACTOR))
    seed: int = 0
    max_workers: Optional[int] = None
    max_instances: Optional[int] = None


def detect_reference_instances(
        correspondences: CorrespondenceSet,
        width: float,
        height: float,
        *,
        label: Hashable = None,
        params: DetectionParams = DetectionParams(),
        rng: Optional[np.random.Generator] = None,
) -> list[DetectionCandidate]:
    """
    One detection pass for one reference.

    correspondences: reference -> frame point matches
    width, height: reference rectangle size in the reference's keypoint space
    """
    rp = params.ransac
    models = ransac_top_models(
        HomographyFitter(),
        correspondences.src,
        correspondences.dst,
        threshold=rp.threshold,
        max_iters=rp.max_iters,
        top_n=rp.top_n,
        min_inliers=rp.min_inliers,
        seed=params.seed,
        rng=rng,
    )

    candidates = select_instances(
        models,
        width,
        height,
        label=label,
        params=params.plausibility,
        max_instances=params.max_instances,
    )

    if DEBUG:
        print(f"[pipeline] {label!r}: matches={len(correspondences)}, models={len(models)}, "
              f"detections={len(candidates)}")
    return candidates


def _rescale(candidate: DetectionCandidate, scale_factor: float) -> DetectionCandidate:
    if scale_factor == 1.0:
        return candidate
    return DetectionCandidate(
        label=candidate.label,
        corners=candidate.corners / scale_factor,
        homography=candidate.homography,
        inlier_count=candidate.inlier_count,
    )


def detect_in_frame(
        frame_features: ImageFeatures,
        references: Sequence[ReferenceImage],
        *,
        params: DetectionParams = DetectionParams(),
) -> list[DetectionCandidate]:
    """
    Detect every reference in one frame.

    Returns detections in reference order, corners in original frame pixels
    (frame keypoint coordinates divided by the frame's scale factor). The
    homography stays in keypoint space.
    """
    if not references:
        return []

    def run_pass(i: int, ref: ReferenceImage) -> list[DetectionCandidate]:
        matches = find_good_matches(ref.features.descriptors, frame_features.descriptors, params=params.matching)
        corrs = build_correspondences(ref.features, frame_features, matches)
        # each pass owns its random source
        rng = np.random.default_rng(params.seed + i)
        found = detect_reference_instances(
            corrs, ref.width, ref.height, label=ref.label, params=params, rng=rng,
        )
        return [_rescale(c, frame_features.scale_factor) for c in found]

    with ThreadPoolExecutor(max_workers=params.max_workers) as pool:
        futures = [pool.submit(run_pass, i, ref) for i, ref in enumerate(references)]
        # join all passes before publishing; result() re-raises caller bugs
        per_reference = [f.result() for f in futures]

    return [c for found in per_reference for c in found]


def detect_in_image(
        image: np.ndarray,
        references: Sequence[ReferenceImage],
        *,
        params: DetectionParams = DetectionParams(),
) -> list[DetectionCandidate]:
    """
    Convenience wrapper: extract frame features with params.features, then
    detect_in_frame.
    """
    frame_features = detect_and_compute(image, params=params.features)
    return detect_in_frame(frame_features, references, params=params)
