"""
Descriptor matching: reference (query) features -> frame (train) features.

Brute-force Hamming k-NN. Unlike a ratio test, every neighbour under the
distance cutoff is kept, so one reference keypoint can match several places in
the frame. That is deliberate for multi-instance detection: each copy of the
reference gets its own correspondences and the RANSAC/selector stages sort
them into separate models.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import cv2

from ..ransac.types import CorrespondenceSet
from .features import ImageFeatures


@dataclass(frozen=True)
class MatchParams:
    """
    k:
      - Number of nearest neighbours requested per reference descriptor.
    distance_threshold:
      - Hamming distance cutoff; neighbours are kept in order until the first
        one at or above it.
    """
    k: int = 30
    distance_threshold: float = 80.0


def find_good_matches(
        query_descriptors: np.ndarray | None,
        train_descriptors: np.ndarray | None,
        *,
        params: MatchParams = MatchParams(),
) -> list[tuple[int, int]]:
    """
    Return (query_idx, train_idx) pairs, grouped by query, closest first.
    """
    if query_descriptors is None or train_descriptors is None:
        return []
    if len(query_descriptors) == 0 or len(train_descriptors) == 0:
        return []
    if params.k < 1:
        raise ValueError(f"k must be >= 1, got {params.k}")

    matcher = cv2.BFMatcher(cv2.NORM_HAMMING)
    knn = matcher.knnMatch(query_descriptors, train_descriptors, k=min(params.k, len(train_descriptors)))

    good: list[tuple[int, int]] = []
    for neighbours in knn:
        # neighbours are sorted by distance
        for m in neighbours:
            if m.distance >= params.distance_threshold:
                break
            good.append((int(m.queryIdx), int(m.trainIdx)))
    return good


def build_correspondences(
        query: ImageFeatures,
        train: ImageFeatures,
        matches: list[tuple[int, int]],
) -> CorrespondenceSet:
    """
    Turn index pairs into a CorrespondenceSet (src = reference, dst = frame).
    ids are positions in the matches list.
    """
    if not matches:
        empty = np.zeros((0, 2), dtype=np.float64)
        return CorrespondenceSet(src=empty, dst=empty.copy(), ids=np.zeros((0,), dtype=np.intp))

    pairs = np.asarray(matches, dtype=np.intp).reshape(-1, 2)
    return CorrespondenceSet(
        src=query.keypoints[pairs[:, 0]],
        dst=train.keypoints[pairs[:, 1]],
        ids=np.arange(pairs.shape[0], dtype=np.intp),
    )
