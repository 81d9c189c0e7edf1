"""Loading RGB-D image sequences from a TUM association file."""

from __future__ import annotations

from dataclasses import dataclass, field

from orbslam.sequences import _first_number, _lines


@dataclass
class RGBDSequence:
    """Colour and depth image file names paired with timestamps in seconds."""

    rgb: list[str] = field(default_factory=list)
    depth: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rgb)

    def __iter__(self):
        return iter(zip(self.rgb, self.depth, self.timestamps))


def load_tum_rgbd(association_path) -> RGBDSequence:
    """Read lines of ``timestamp rgb_file timestamp depth_file``.

    The timestamp of the colour image is kept. A missing file name is read
    as an empty string.
    """
    sequence = RGBDSequence()
    for line in _lines(association_path):
        if not line:
            continue
        fields = line.split()
        sequence.timestamps.append(_first_number(line))
        sequence.rgb.append(fields[1] if len(fields) > 1 else "")
        sequence.depth.append(fields[3] if len(fields) > 3 else "")
    return sequence