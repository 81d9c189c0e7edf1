import pytest

from orbslam.stereo_sequences import StereoSequence, load_euroc_stereo, load_kitti_stereo


def test_euroc_stereo_paths_and_timestamps(tmp_path):
    times = tmp_path / "times.txt"
    stamps = ["1403636579763555584", "1403636579813555456"]
    times.write_text("\n".join(stamps) + "\n")
    seq = load_euroc_stereo("cam0", "cam1", times)
    assert len(seq) == 2
    assert seq.left == [f"cam0/{s}.png" for s in stamps]
    assert seq.right == [f"cam1/{s}.png" for s in stamps]
    for ts, raw in zip(seq.timestamps, stamps):
        assert ts * 1e9 == pytest.approx(float(raw))


def test_euroc_stereo_skips_empty_lines(tmp_path):
    times = tmp_path / "times.txt"
    times.write_text("1000000000\n\n2000000000\n")
    seq = load_euroc_stereo("l", "r", times)
    assert seq.timestamps == [1.0, 2.0]
    assert len(seq.left) == len(seq.right) == 2


def test_euroc_stereo_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_euroc_stereo("l", "r", tmp_path / "absent.txt")


def test_kitti_stereo_names(tmp_path):
    (tmp_path / "times.txt").write_text("0.0\n0.1\n0.2\n")
    seq = load_kitti_stereo(tmp_path)
    assert seq.timestamps == [0.0, 0.1, 0.2]
    assert seq.left[0] == f"{tmp_path}/image_0/000000.png"
    assert seq.right[2] == f"{tmp_path}/image_1/000002.png"
    assert [name.rsplit("/", 1)[1] for name in seq.left] == [
        name.rsplit("/", 1)[1] for name in seq.right
    ]


def test_kitti_stereo_bad_line(tmp_path):
    (tmp_path / "times.txt").write_text("abc\n")
    with pytest.raises(ValueError):
        load_kitti_stereo(tmp_path)


def test_iteration_yields_triples():
    seq = StereoSequence(["a"], ["b"], [1.5])
    assert list(seq) == [("a", "b", 1.5)]


def test_mismatched_lengths_rejected():
    with pytest.raises(ValueError):
        StereoSequence(["a", "b"], ["c"], [0.0, 1.0])