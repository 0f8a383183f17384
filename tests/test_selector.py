"""
Tests for greedy multi-instance selection over ranked models.
"""
from __future__ import annotations

import numpy as np
import pytest

from planardetect.detect.selector import select_instances, reference_corners
from planardetect.detect.plausibility import PlausibilityParams
from planardetect.ransac.core import ransac_top_models
from planardetect.ransac.homography import apply_homography
from planardetect.ransac.homography_fitter import HomographyFitter
from planardetect.ransac.types import ModelResult


W, H = 100.0, 80.0
N = 40


# ---------- Utilities ---------- #

def _translation(tx: float, ty: float, scale: float = 1.0) -> np.ndarray:
    return np.array([[scale, 0, tx], [0, scale, ty], [0, 0, 1]], dtype=np.float64)


def _model(H: np.ndarray, inlier_rows, sample_rows) -> ModelResult:
    mask = np.zeros((N,), dtype=bool)
    mask[list(inlier_rows)] = True
    return ModelResult(
        indices=np.asarray(sample_rows, dtype=np.intp),
        homography=H,
        inlier_count=int(mask.sum()),
        inliers=mask,
    )


def _two_instance_scene(seed: int):
    """
    Every reference point is matched to two physical copies of the reference,
    plus random outliers. Returns src, dst and the two true homographies.
    """
    rng = np.random.default_rng(seed)
    H_a = _translation(40.0, 30.0, 1.2)
    H_b = np.array([[0.9, -0.1, 400.0], [0.1, 0.9, 250.0], [0.0, 0.0, 1.0]])

    ref = rng.uniform([0, 0], [W, H], size=(60, 2))
    out_src = rng.uniform([0, 0], [W, H], size=(30, 2))
    out_dst = rng.uniform([0, 0], [640, 480], size=(30, 2))

    src = np.vstack([ref, ref, out_src])
    dst = np.vstack([apply_homography(H_a, ref), apply_homography(H_b, ref), out_dst])
    return src, dst, H_a, H_b


# ---------- Selection rules ---------- #

def test_disjoint_models_give_two_detections():
    m1 = _model(_translation(50, 40), range(0, 20), [0, 1, 2, 3])
    m2 = _model(_translation(400, 300), range(20, 40), [20, 21, 22, 23])

    found = select_instances([m1, m2], W, H, label="ref")
    assert len(found) == 2
    assert all(c.label == "ref" for c in found)
    assert np.allclose(found[0].corners, reference_corners(W, H) + [50, 40])
    assert np.allclose(found[1].corners, reference_corners(W, H) + [400, 300])
    assert found[0].inlier_count == 20


def test_overlapping_models_keep_only_the_higher_ranked():
    m1 = _model(_translation(50, 40), range(0, 20), [0, 1, 2, 3])
    # shares a single inlier (row 19) but its own sample is unclaimed
    m2 = _model(_translation(400, 300), range(19, 40), [25, 26, 27, 28])

    found = select_instances([m1, m2], W, H)
    assert len(found) == 1
    assert np.allclose(found[0].corners, reference_corners(W, H) + [50, 40])


def test_claimed_sample_is_skipped():
    m1 = _model(_translation(50, 40), range(0, 20), [0, 1, 2, 3])
    m2 = _model(_translation(52, 41), range(20, 40), [5, 21, 22, 23])

    assert len(select_instances([m1, m2], W, H)) == 1


def test_implausible_model_claims_nothing():
    # top-ranked model shrinks the reference to a few pixels
    bad = _model(_translation(10, 10, 0.01), range(0, 30), [0, 1, 2, 3])
    good = _model(_translation(300, 200), range(10, 40), [10, 11, 12, 13])

    found = select_instances([bad, good], W, H)
    assert len(found) == 1
    assert found[0].inlier_count == 30
    assert np.allclose(found[0].corners, reference_corners(W, H) + [300, 200])


def test_homography_bounds_apply_when_set():
    sheared = _translation(50, 40)
    sheared[0, 1] = 0.3
    m = _model(sheared, range(0, 20), [0, 1, 2, 3])

    assert len(select_instances([m], W, H)) == 1
    assert select_instances([m], W, H, params=PlausibilityParams(max_shear=0.2)) == []


def test_max_instances_caps_output():
    m1 = _model(_translation(50, 40), range(0, 20), [0, 1, 2, 3])
    m2 = _model(_translation(400, 300), range(20, 40), [20, 21, 22, 23])
    assert len(select_instances([m1, m2], W, H, max_instances=1)) == 1


def test_no_models_no_detections():
    assert select_instances([], W, H) == []


def test_mismatched_mask_lengths_raise():
    m1 = _model(_translation(50, 40), range(0, 20), [0, 1, 2, 3])
    short = ModelResult(indices=np.arange(4), homography=np.eye(3), inlier_count=1,
                        inliers=np.array([True] + [False] * 9))
    with pytest.raises(ValueError):
        select_instances([m1, short], W, H)


# ---------- With the estimator ---------- #

def test_two_copies_of_reference_are_both_found():
    src, dst, H_a, H_b = _two_instance_scene(0)
    models = ransac_top_models(
        HomographyFitter(), src, dst,
        threshold=2.0, max_iters=2000, top_n=100, min_inliers=12, seed=0,
    )
    found = select_instances(models, W, H, label="marker")
    assert len(found) == 2

    rect = reference_corners(W, H)
    expected = [apply_homography(H_a, rect), apply_homography(H_b, rect)]
    for quad in expected:
        errs = [np.max(np.linalg.norm(c.corners - quad, axis=1)) for c in found]
        assert min(errs) < 1e-3

    # no correspondence explained by both detections
    masks = [next(m.inliers for m in models if m.homography is c.homography) for c in found]
    assert not np.any(masks[0] & masks[1])
    assert all(c.label == "marker" for c in found)
