"""Loading monocular image sequences and timing their playback."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple, Sequence


@dataclass
class ImageSequence:
    """Image file names paired with their timestamps in seconds."""

    images: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.images)


class TrackingStats(NamedTuple):
    median: float
    mean: float


def _lines(path) -> list[str]:
    return Path(path).read_text().splitlines()


def _first_number(line: str) -> float:
    token = line.split()[0] if line.split() else ""
    try:
        return float(token)
    except ValueError:
        raise ValueError(f"line does not start with a number: {line!r}") from None


def load_euroc_mono(image_path, times_path) -> ImageSequence:
    """Read a EuRoC times file; timestamps are given in nanoseconds."""
    sequence = ImageSequence()
    for line in _lines(times_path):
        if not line:
            continue
        sequence.images.append(f"{image_path}/{line}.png")
        sequence.timestamps.append(_first_number(line) / 1e9)
    return sequence


def load_kitti_mono(sequence_path) -> ImageSequence:
    """Read ``times.txt`` of a KITTI sequence and name the left images in ``image_0``."""
    timestamps = [_first_number(line) for line in _lines(f"{sequence_path}/times.txt") if line]
    images = [f"{sequence_path}/image_0/{i:06d}.png" for i in range(len(timestamps))]
    return ImageSequence(images, timestamps)


def load_tum_mono(rgb_list_path) -> ImageSequence:
    """Read a TUM ``rgb.txt``: three header lines, then timestamp and file name."""
    sequence = ImageSequence()
    for line in _lines(rgb_list_path)[3:]:
        if not line:
            continue
        fields = line.split()
        sequence.timestamps.append(_first_number(line))
        sequence.images.append(fields[1] if len(fields) > 1 else "")
    return sequence


def frame_wait_time(timestamps: Sequence[float], index: int, elapsed: float) -> float:
    """Seconds to wait after tracking frame ``index`` so playback keeps real time."""
    n = len(timestamps)
    if not 0 <= index < n:
        raise IndexError("frame index out of range")
    period = 0.0
    if index < n - 1:
        period = timestamps[index + 1] - timestamps[index]
    elif index > 0:
        period = timestamps[index] - timestamps[index - 1]
    return period - elapsed if elapsed < period else 0.0


def tracking_time_stats(times: Sequence[float]) -> TrackingStats:
    """Median and mean of per-frame tracking times."""
    if not times:
        raise ValueError("no tracking times")
    ordered = sorted(times)
    return TrackingStats(ordered[len(ordered) // 2], sum(ordered) / len(ordered))