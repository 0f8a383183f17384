from __future__ import annotations

import logging
import time

import cv2
import numpy as np

from planardetect.detect.analyzer import FrameAnalyzer
from planardetect.detect.pipeline import DetectionParams, ReferenceImage, detect_in_image
from planardetect.ransac.core import RansacParams


def make_texture(h: int, w: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    small = rng.integers(0, 256, size=(h // 8, w // 8), dtype=np.uint8)
    img = cv2.resize(small, (w, h), interpolation=cv2.INTER_NEAREST)
    return cv2.GaussianBlur(img, (3, 3), 0)


def make_frame(reference: np.ndarray, H_list: list[np.ndarray], seed: int) -> np.ndarray:
    """
    Background texture with the reference warped in once per homography.
    """
    frame = make_texture(480, 640, seed)
    ones = np.full(reference.shape, 255, dtype=np.uint8)
    for H in H_list:
        warped = cv2.warpPerspective(reference, H, (640, 480))
        mask = cv2.warpPerspective(ones, H, (640, 480)) > 0
        frame[mask] = warped[mask]
    return frame


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    ref_img = make_texture(160, 240, seed=5)
    references = [ReferenceImage.from_image("texture", ref_img)]
    print(f"reference keypoints: {len(references[0].features)}")

    H_a = np.array([[0.9, 0.05, 40.0], [-0.05, 0.9, 50.0], [0.0, 0.0, 1.0]])
    H_b = np.array([[1.0, -0.1, 360.0], [0.1, 1.0, 260.0], [2e-4, 0.0, 1.0]])

    params = DetectionParams(ransac=RansacParams(threshold=3.0, top_n=50))

    # Single frame
    frame = make_frame(ref_img, [H_a, H_b], seed=6)
    t0 = time.perf_counter()
    found = detect_in_image(frame, references, params=params)
    dt = (time.perf_counter() - t0) * 1000.0

    print(f"detections: {len(found)} in {dt:.1f} ms")
    for c in found:
        corners = ", ".join(f"({x:.1f},{y:.1f})" for x, y in c.corners)
        print(f"  {c.label}: inliers={c.inlier_count} corners=[{corners}]")

    # Frame stream: frames arriving while the worker is busy are dropped
    with FrameAnalyzer(lambda f: detect_in_image(f, references, params=params)) as analyzer:
        for i in range(20):
            frame = make_frame(ref_img, [H_a, H_b], seed=100 + i)
            analyzer.submit(frame)
            time.sleep(0.01)
        analyzer.wait()

        latest = analyzer.latest()
        print(f"\n[stream] submitted={analyzer.submitted} dropped={analyzer.dropped} failed={analyzer.failed}")
        print(f"[stream] latest detections: {0 if latest is None else len(latest)}")


if __name__ == "__main__":
    main()
