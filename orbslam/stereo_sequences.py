"""Loading stereo image sequences."""

from __future__ import annotations

from dataclasses import dataclass, field

from orbslam.sequences import _first_number, _lines


@dataclass
class StereoSequence:
    """Left and right image file names paired with timestamps in seconds."""

    left: list[str] = field(default_factory=list)
    right: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not len(self.left) == len(self.right) == len(self.timestamps):
            raise ValueError("left images, right images and timestamps differ in number")

    def __len__(self) -> int:
        return len(self.left)

    def __iter__(self):
        return iter(zip(self.left, self.right, self.timestamps))


def load_euroc_stereo(left_path, right_path, times_path) -> StereoSequence:
    """Read a EuRoC times file; timestamps are given in nanoseconds."""
    sequence = StereoSequence()
    for line in _lines(times_path):
        if not line:
            continue
        sequence.left.append(f"{left_path}/{line}.png")
        sequence.right.append(f"{right_path}/{line}.png")
        sequence.timestamps.append(_first_number(line) / 1e9)
    return sequence


def load_kitti_stereo(sequence_path) -> StereoSequence:
    """Read ``times.txt`` of a KITTI sequence and name images in ``image_0`` and ``image_1``."""
    timestamps = [_first_number(line) for line in _lines(f"{sequence_path}/times.txt") if line]
    names = [f"{i:06d}.png" for i in range(len(timestamps))]
    left = [f"{sequence_path}/image_0/{name}" for name in names]
    right = [f"{sequence_path}/image_1/{name}" for name in names]
    return StereoSequence(left, right, timestamps)