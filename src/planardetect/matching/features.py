"""
Keypoint detection + binary descriptors

AKAZE via cv2.AKAZE_create, run on a grayscale copy of the image that is
optionally resized first. Small camera frames are upscaled before extraction
so that small references still produce enough keypoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import cv2

from ..ransac.types import Points2D

# Upscaling applied before extraction: references are stored at 2x, camera
# frames are analyzed at 3x so small references still yield keypoints.
REFERENCE_SCALE_FACTOR = 2.0
FRAME_SCALE_FACTOR = 3.0


@dataclass(frozen=True)
class FeatureParams:
    """
    Parameters for feature extraction.

    scale_factor:
      - Image is resized by this factor before detection. Keypoints are in the
        resized pixel space; divide by scale_factor to get original pixels.
      - 1.0 here; references and frames get their own defaults
        (REFERENCE_SCALE_FACTOR, FRAME_SCALE_FACTOR).
    threshold:
      - AKAZE detector response threshold. Lower gives more keypoints.
    """
    scale_factor: float = 1.0
    threshold: float = 0.001


@dataclass(frozen=True)
class ImageFeatures:
    """
    Keypoints and descriptors of one image.

    width, height:
      - size of the (resized) image the keypoints were detected on
    keypoints:
      - (N,2) float64 keypoint positions
    descriptors:
      - (N,D) uint8 binary descriptors, or None when nothing was detected
    """
    width: int
    height: int
    keypoints: Points2D
    descriptors: Optional[np.ndarray]
    scale_factor: float = 1.0

    def __len__(self) -> int:
        return int(self.keypoints.shape[0])


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise ValueError(f"Expected grayscale (H,W) or BGR(A) (H,W,3|4) image, got {image.shape}")


def detect_and_compute(
        image: np.ndarray,
        *,
        params: FeatureParams = FeatureParams(),
        detector: Optional[cv2.Feature2D] = None,
) -> ImageFeatures:
    """
    Detect keypoints and compute descriptors.

    Input:
      image: (H,W) grayscale or (H,W,3) BGR image, uint8
      detector: any cv2.Feature2D; AKAZE with params.threshold if None
    Output:
      ImageFeatures in the resized image's pixel space
    """
    if image is None or image.size == 0:
        raise ValueError("detect_and_compute received an empty image.")
    if params.scale_factor <= 0:
        raise ValueError(f"scale_factor must be positive, got {params.scale_factor}")

    gray = to_gray(image)

    if params.scale_factor != 1.0:
        gray = cv2.resize(
            gray, None,
            fx=params.scale_factor, fy=params.scale_factor,
            interpolation=cv2.INTER_LINEAR,
        )

    if detector is None:
        detector = cv2.AKAZE_create(threshold=params.threshold)

    keypoints, descriptors = detector.detectAndCompute(gray, None)

    if keypoints:
        pts = np.array([kp.pt for kp in keypoints], dtype=np.float64).reshape(-1, 2)
    else:
        pts = np.zeros((0, 2), dtype=np.float64)
        descriptors = None

    H, W = gray.shape[:2]
    return ImageFeatures(
        width=int(W),
        height=int(H),
        keypoints=pts,
        descriptors=descriptors,
        scale_factor=float(params.scale_factor),
    )
