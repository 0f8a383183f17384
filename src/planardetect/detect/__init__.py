"""
Detection package: plausibility filter, multi-instance selector, per-frame
pipeline and the frame analysis worker.
"""
from .plausibility import (
    PlausibilityParams, is_plausible_quad, is_plausible_homography,
    edge_lengths, corner_angles_deg,
)
from .selector import DetectionCandidate, reference_corners, select_instances
from .pipeline import (
    ReferenceImage, DetectionParams,
    detect_reference_instances, detect_in_frame, detect_in_image,
)
from .analyzer import FrameAnalyzer

__all__ = [
    "PlausibilityParams", "is_plausible_quad", "is_plausible_homography",
    "edge_lengths", "corner_angles_deg",
    "DetectionCandidate", "reference_corners", "select_instances",
    "ReferenceImage", "DetectionParams",
    "detect_reference_instances", "detect_in_frame", "detect_in_image",
    "FrameAnalyzer",
]
