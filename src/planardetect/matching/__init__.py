"""
Feature extraction and matching package
"""
from .features import (
    FeatureParams, ImageFeatures, detect_and_compute, to_gray,
    REFERENCE_SCALE_FACTOR, FRAME_SCALE_FACTOR,
)
from .matcher import MatchParams, find_good_matches, build_correspondences

__all__ = [
    "FeatureParams", "ImageFeatures", "detect_and_compute", "to_gray",
    "REFERENCE_SCALE_FACTOR", "FRAME_SCALE_FACTOR",
    "MatchParams", "find_good_matches", "build_correspondences",
]
