"""Feature-based visual SLAM building blocks: transforms, two-view initialization, frames, plane detection, drawing and dataset loaders."""

__version__ = "0.1.0"

__all__ = [
    "ar",
    "converter",
    "frame",
    "frame_drawer",
    "initializer",
    "rgbd_sequences",
    "sequences",
    "stereo_sequences",
    "twoview",
]