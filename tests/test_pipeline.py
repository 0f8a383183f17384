"""
Tests for the per-frame detection pipeline and the frame analysis worker.
Scenes are generated on the fly, so no test assets are required.
"""
from __future__ import annotations

import threading

import numpy as np
import cv2
import pytest

from planardetect.detect.analyzer import FrameAnalyzer
from planardetect.detect.pipeline import (
    DetectionParams,
    ReferenceImage,
    detect_in_frame,
    detect_in_image,
    detect_reference_instances,
)
from planardetect.detect.selector import reference_corners
from planardetect.matching.features import (
    ImageFeatures, FeatureParams, detect_and_compute, REFERENCE_SCALE_FACTOR, FRAME_SCALE_FACTOR,
)
from planardetect.matching.matcher import MatchParams, find_good_matches, build_correspondences
from planardetect.ransac.core import RansacParams
from planardetect.ransac.homography import apply_homography
from planardetect.ransac.types import Correspondence, CorrespondenceSet


PARAMS = DetectionParams(ransac=RansacParams(threshold=3.0, max_iters=2000, top_n=50, min_inliers=12))

H_A = np.array([[1.2, 0.0, 60.0], [0.0, 1.2, 50.0], [0.0, 0.0, 1.0]])
H_B = np.array([[0.9, -0.1, 700.0], [0.1, 0.9, 500.0], [0.0, 0.0, 1.0]])
H_C = np.array([[1.0, 0.0, 300.0], [0.0, 1.0, 650.0], [0.0, 0.0, 1.0]])


# ---------- Utilities to build synthetic scenes ---------- #

def _fake_reference(label: str, seed: int, n: int = 60, w: int = 200, h: int = 150) -> ReferenceImage:
    rng = np.random.default_rng(seed)
    kps = rng.uniform([0, 0], [w, h], size=(n, 2))
    desc = rng.integers(0, 256, size=(n, 61), dtype=np.uint8)
    return ReferenceImage(label=label, features=ImageFeatures(w, h, kps, desc))


def _fake_frame(placements, scale_factor: float = 2.0, seed: int = 99) -> ImageFeatures:
    """Frame features made of transformed copies of reference features plus clutter."""
    rng = np.random.default_rng(seed)
    kps = [rng.uniform([0, 0], [1280, 960], size=(40, 2))]
    desc = [rng.integers(0, 256, size=(40, 61), dtype=np.uint8)]
    for ref, H in placements:
        kps.append(apply_homography(H, ref.features.keypoints))
        desc.append(ref.features.descriptors)
    return ImageFeatures(1280, 960, np.vstack(kps), np.vstack(desc), scale_factor=scale_factor)


def _textured(h: int, w: int, seed: int) -> np.ndarray:
    """Blocky random texture: plenty of corners and blobs for AKAZE."""
    rng = np.random.default_rng(seed)
    small = rng.integers(0, 256, size=(h // 8, w // 8), dtype=np.uint8)
    img = cv2.resize(small, (w, h), interpolation=cv2.INTER_NEAREST)
    return cv2.GaussianBlur(img, (3, 3), 0)


def _max_corner_error(found, expected) -> float:
    return float(np.max(np.linalg.norm(found - expected, axis=1)))


# ---------- Single pass ---------- #

def test_single_pass_on_correspondence_list():
    rng = np.random.default_rng(0)
    ref = rng.uniform([0, 0], [200, 150], size=(40, 2))
    dst = apply_homography(H_A, ref)
    corrs = CorrespondenceSet.from_list(
        Correspondence(src=tuple(s), dst=tuple(d), index=100 + i) for i, (s, d) in enumerate(zip(ref, dst))
    )

    found = detect_reference_instances(corrs, 200, 150, label="card", params=PARAMS)
    assert len(found) == 1
    assert found[0].label == "card"
    assert _max_corner_error(found[0].corners, apply_homography(H_A, reference_corners(200, 150))) < 1e-3


def test_single_pass_with_too_few_matches():
    corrs = CorrespondenceSet.from_arrays(np.zeros((3, 2)), np.ones((3, 2)))
    assert detect_reference_instances(corrs, 200, 150, params=PARAMS) == []


def test_correspondence_set_keeps_original_ids():
    corrs = CorrespondenceSet.from_list([
        Correspondence((0, 0), (1, 1), 7),
        Correspondence((1, 0), (2, 1), 3),
        Correspondence((0, 1), (1, 2), 12),
    ])
    assert list(corrs.original_ids(np.array([True, False, True]))) == [7, 12]
    with pytest.raises(ValueError):
        CorrespondenceSet.from_arrays(np.zeros((4, 2)), np.zeros((5, 2)))


# ---------- Matching ---------- #

def test_matches_keep_every_neighbour_under_the_cutoff():
    ref = _fake_reference("a", seed=1)
    frame = _fake_frame([(ref, H_A), (ref, H_B)])

    matches = find_good_matches(ref.features.descriptors, frame.descriptors, params=MatchParams(k=30))
    # each reference descriptor appears twice in the frame at distance 0
    assert len(matches) == 2 * len(ref.features)

    corrs = build_correspondences(ref.features, frame, matches)
    assert len(corrs) == len(matches)
    assert np.array_equal(corrs.ids, np.arange(len(matches)))


def test_no_descriptors_no_matches():
    ref = _fake_reference("a", seed=1)
    assert find_good_matches(ref.features.descriptors, None) == []
    assert len(build_correspondences(ref.features, ref.features, [])) == 0


# ---------- Frame fan-out ---------- #

def test_frame_with_several_references():
    first = _fake_reference("first", seed=1)
    second = _fake_reference("second", seed=2)
    absent = _fake_reference("absent", seed=3)
    frame = _fake_frame([(first, H_A), (second, H_C), (first, H_B)], scale_factor=2.0)

    found = detect_in_frame(frame, [first, second, absent], params=PARAMS)
    assert [c.label for c in found] == ["first", "first", "second"]

    rect = reference_corners(200, 150)
    # corners come back in original frame pixels
    expected_first = [apply_homography(H_A, rect) / 2.0, apply_homography(H_B, rect) / 2.0]
    for quad in expected_first:
        assert min(_max_corner_error(c.corners, quad) for c in found[:2]) < 1e-3
    assert _max_corner_error(found[2].corners, apply_homography(H_C, rect) / 2.0) < 1e-3


def test_frame_results_do_not_depend_on_worker_count():
    first = _fake_reference("first", seed=1)
    second = _fake_reference("second", seed=2)
    frame = _fake_frame([(first, H_A), (second, H_C)])

    serial = detect_in_frame(frame, [first, second],
                             params=DetectionParams(ransac=PARAMS.ransac, max_workers=1))
    parallel = detect_in_frame(frame, [first, second],
                               params=DetectionParams(ransac=PARAMS.ransac, max_workers=4))
    assert [c.label for c in serial] == [c.label for c in parallel]
    for a, b in zip(serial, parallel):
        assert np.array_equal(a.corners, b.corners)


def test_no_references_no_detections():
    frame = _fake_frame([])
    assert detect_in_frame(frame, [], params=PARAMS) == []


# ---------- Real images ---------- #

def test_feature_extraction_scales_keypoints():
    img = _textured(160, 240, seed=5)
    plain = detect_and_compute(img)
    doubled = detect_and_compute(cv2.cvtColor(img, cv2.COLOR_GRAY2BGR), params=FeatureParams(scale_factor=2.0))

    assert (plain.width, plain.height) == (240, 160)
    assert (doubled.width, doubled.height) == (480, 320)
    assert len(plain) > 20
    assert plain.descriptors is not None and plain.descriptors.shape[0] == len(plain)


def test_installed_opencv_provides_akaze():
    assert hasattr(cv2, "AKAZE_create")
    features = detect_and_compute(_textured(64, 64, seed=1))
    assert features.descriptors is not None


def test_reference_and_frame_default_scales():
    img = _textured(160, 240, seed=5)
    reference = ReferenceImage.from_image("texture", img)

    assert reference.features.scale_factor == REFERENCE_SCALE_FACTOR == 2.0
    assert (reference.width, reference.height) == (480, 320)
    assert DetectionParams().features.scale_factor == FRAME_SCALE_FACTOR == 3.0
    assert FeatureParams().scale_factor == 1.0


def test_two_copies_found_in_synthetic_frame():
    ref_img = _textured(160, 240, seed=5)
    frame = _textured(480, 640, seed=6)
    frame[60:220, 40:280] = ref_img
    frame[280:440, 360:600] = ref_img

    # same scale on both sides keeps keypoint positions pixel-aligned
    unscaled = FeatureParams(scale_factor=1.0)
    reference = ReferenceImage.from_image("texture", ref_img, params=unscaled)
    params = DetectionParams(ransac=PARAMS.ransac, features=unscaled)
    found = detect_in_image(frame, [reference], params=params)
    assert len(found) >= 2

    rect = reference_corners(240, 160)
    for offset in ([40, 60], [360, 280]):
        expected = rect + np.array(offset, dtype=np.float64)
        assert min(_max_corner_error(c.corners, expected) for c in found) < 5.0


# ---------- Frame analysis worker ---------- #

def test_analyzer_drops_frames_while_busy():
    gate = threading.Event()

    def analyze(frame: int) -> int:
        gate.wait(5.0)
        return frame * 2

    with FrameAnalyzer(analyze) as analyzer:
        assert analyzer.latest() is None
        assert analyzer.submit(1)
        assert analyzer.is_busy()
        assert not analyzer.submit(2)

        gate.set()
        assert analyzer.wait(5.0)
        assert analyzer.latest() == 2

        assert analyzer.submit(3)
        assert analyzer.wait(5.0)
        assert analyzer.latest() == 6

        assert analyzer.submitted == 2
        assert analyzer.dropped == 1


def test_analyzer_keeps_previous_result_on_failure():
    def analyze(frame: int) -> int:
        if frame < 0:
            raise ValueError("bad frame")
        return frame

    analyzer = FrameAnalyzer(analyze)
    assert analyzer.submit(5)
    assert analyzer.wait(5.0)
    assert analyzer.submit(-1)
    assert analyzer.wait(5.0)

    assert analyzer.latest() == 5
    assert analyzer.failed == 1

    analyzer.close()
    with pytest.raises(RuntimeError):
        analyzer.submit(1)
