"""
Generic top-N RANSAC loop (model-agnostic).

RANSAC overview:
- Randomly sample a *minimal* subset of correspondences
- Redraw while the subset is degenerate (fitter.check_sample)
- Fit a candidate model from that subset
- Score all correspondences by computing squared residual errors
- Mark inliers where error <= tau^2
- Keep the N best-supported models, not just the single best one

Keeping several models is what allows the same reference to be found more
than once in a scene: each physical copy produces its own well-supported
model, and detect/selector.py later picks the non-overlapping ones.
"""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

import numpy as np

from .types import DEBUG, Points2D, Mask2D, IntArray, ModelFitter, ModelResult

M = TypeVar("M")

# Redraw budget for one non-degenerate minimal subset
MAX_SUBSET_ATTEMPTS = 10_000


@dataclass(frozen=True)
class RansacParams:
    """
    threshold:
      - Reprojection error threshold tau in pixels. Inlier if error <= tau.
    max_iters:
      - Number of sampling iterations (no adaptive early stop).
    top_n:
      - How many of the best-supported models to retain.
    min_inliers:
      - A model needs strictly more inliers than this to be retained.
    """
    threshold: float = 10.0
    max_iters: int = 2000
    top_n: int = 10
    min_inliers: int = 12


# ---------- Bounded ranked list ----------
class TopModels(Generic[M]):
    """
    Fixed-capacity list of ModelResult sorted by descending inlier count.

    A new model is accepted when there is room or when it strictly beats the
    current worst. Among equal counts the model found first stays ahead.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._models: list[ModelResult[M]] = []
        # negated counts, ascending, mirrors _models for bisect
        self._keys: list[int] = []

    def __len__(self) -> int:
        return len(self._models)

    @property
    def worst_count(self) -> Optional[int]:
        return self._models[-1].inlier_count if self._models else None

    def offer(self, result: ModelResult[M]) -> bool:
        """
        Insert result at its ranked position. Returns True if it was kept.
        """
        if len(self._models) >= self.capacity and result.inlier_count <= self._models[-1].inlier_count:
            return False

        # bisect_right places it after existing models with the same count
        pos = bisect_right(self._keys, -result.inlier_count)
        self._models.insert(pos, result)
        self._keys.insert(pos, -result.inlier_count)

        if len(self._models) > self.capacity:
            self._models.pop()
            self._keys.pop()
        return True

    def to_list(self) -> list[ModelResult[M]]:
        return list(self._models)


# ---------- Sampling ----------
def _draw_subset(
        model_fitter: ModelFitter[M],
        pts0: Points2D,
        pts1: Points2D,
        rng: np.random.Generator,
        max_attempts: int,
) -> Optional[IntArray]:
    """
    Draw min_samples distinct indices uniformly, redrawing until the fitter
    accepts both point subsets. None when the attempt budget runs out.
    """
    n = pts0.shape[0]
    for _ in range(max_attempts):
        idx = rng.choice(n, size=model_fitter.min_samples, replace=False)
        if model_fitter.check_sample(pts0[idx], pts1[idx]):
            return idx
    return None


def _score(
        model_fitter: ModelFitter[M],
        model: M,
        indices: IntArray,
        pts0: Points2D,
        pts1: Points2D,
        sqr_threshold: float,
) -> ModelResult[M]:
    err = model_fitter.residuals(model, pts0, pts1)
    inliers: Mask2D = err <= sqr_threshold
    return ModelResult(
        indices=np.asarray(indices, dtype=np.intp),
        homography=model,
        inlier_count=int(np.count_nonzero(inliers)),
        inliers=inliers,
    )


def ransac_top_models(
        model_fitter: ModelFitter[M],
        pts0: Points2D,
        pts1: Points2D,
        *,
        threshold: float = 10.0,
        max_iters: int = 2000,
        top_n: int = 10,
        min_inliers: int = 12,
        seed: int = 0,
        rng: Optional[np.random.Generator] = None,
        max_attempts: int = MAX_SUBSET_ATTEMPTS,
) -> list[ModelResult[M]]:
    """
    Run RANSAC between pts0 -> pts1 and return the top_n models.

    Inputs:
    - model_fitter: provides min_samples, check_sample, fit_minimal, residuals
    - pts0, pts1: (N,2) corresponding points (same N)
    - threshold: inlier threshold tau in pixels
    - max_iters: number of sampling iterations
    - top_n: maximum number of retained models
    - min_inliers: a model needs more than this many inliers to be kept
    - seed / rng: random source; rng wins when given

    Returns:
    - list of ModelResult, descending inlier count, at most top_n long.
      Empty when no model can be formed.

    Sampling exhaustion (no usable subset within max_attempts draws) ends the
    run at whatever iteration it happens; models retained so far are returned.
    """
    # ---------- Input validation ----------
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    if pts0.ndim != 2 or pts0.shape[1] != 2:
        raise ValueError(f"Expected pts shape (N,2), got {pts0.shape}")
    if top_n < 1:
        raise ValueError(f"top_n must be >= 1, got {top_n}")
    if threshold < 0:
        raise ValueError(f"threshold must be >= 0, got {threshold}")

    n = pts0.shape[0]
    k = model_fitter.min_samples
    sqr_threshold = float(threshold) * float(threshold)

    if n < k:
        # Underdetermined
        return []

    if n == k:
        # Nothing to sample from: the only subset is the whole set
        if not model_fitter.check_sample(pts0, pts1):
            return []
        model = model_fitter.fit_minimal(pts0, pts1)
        if model is None:
            return []
        return [ModelResult(
            indices=np.arange(k, dtype=np.intp),
            homography=model,
            inlier_count=n,
            inliers=np.ones((n,), dtype=bool),
        )]

    if rng is None:
        rng = np.random.default_rng(seed)

    top: TopModels[M] = TopModels(top_n)

    # ---------- Main RANSAC Loop ----------
    for i in range(max_iters):
        idx = _draw_subset(model_fitter, pts0, pts1, rng, max_attempts)
        if idx is None:
            if DEBUG:
                print(f"[RANSAC] no usable subset after {max_attempts} draws at iter {i}, stopping")
            break

        model = model_fitter.fit_minimal(pts0[idx], pts1[idx])
        if model is None:
            continue

        result = _score(model_fitter, model, idx, pts0, pts1, sqr_threshold)
        if result.inlier_count <= min_inliers:
            continue

        if top.offer(result) and DEBUG:
            print(f"[RANSAC] iter {i}: kept model inliers={result.inlier_count}/{n}, "
                  f"ranked={len(top)}, worst={top.worst_count}")

    return top.to_list()
