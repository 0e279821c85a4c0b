"""Building blocks for semantic RGB-D SLAM: grey-level k-means, pose conversions, frames, key frames, place recognition, detection alignment, plane fitting and dataset lists."""

__version__ = "0.1.0"