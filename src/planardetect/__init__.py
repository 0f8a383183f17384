"""
planardetect: find (possibly several) instances of planar reference images
in a video frame via robust multi-instance homography estimation.
"""
from .ransac import (
    Correspondence, CorrespondenceSet, ModelResult, RansacParams,
    HomographyFitter, fit_homography, apply_homography, ransac_top_models,
)
from .detect import (
    PlausibilityParams, DetectionCandidate, DetectionParams, ReferenceImage,
    select_instances, detect_reference_instances, detect_in_frame, detect_in_image,
    FrameAnalyzer,
)
from .matching import FeatureParams, MatchParams, ImageFeatures, detect_and_compute

__all__ = [
    "Correspondence", "CorrespondenceSet", "ModelResult", "RansacParams",
    "HomographyFitter", "fit_homography", "apply_homography", "ransac_top_models",
    "PlausibilityParams", "DetectionCandidate", "DetectionParams", "ReferenceImage",
    "select_instances", "detect_reference_instances", "detect_in_frame", "detect_in_image",
    "FrameAnalyzer",
    "FeatureParams", "MatchParams", "ImageFeatures", "detect_and_compute",
]
