import pytest

from semslam.detections import (
    Association,
    align_detections,
    load_associations,
    load_detections,
)


def test_load_associations_skips_blank_lines(tmp_path):
    path = tmp_path / "assoc.txt"
    path.write_text(
        "1.5 rgb/a.png 1.6 depth/a.png\n\n2.5 rgb/b.png 2.6 depth/b.png\n",
        encoding="utf-8",
    )
    assert load_associations(path) == [
        Association(1.5, "rgb/a.png", "depth/a.png"),
        Association(2.5, "rgb/b.png", "depth/b.png"),
    ]


def test_load_associations_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_associations(tmp_path / "absent.txt")


def test_load_detections_rows(tmp_path):
    path = tmp_path / "det.txt"
    path.write_text("0 1 73 10 20 30 40\n\n1 2 66 x 5\n", encoding="utf-8")
    assert load_detections(path) == [[0, 1, 73, 10, 20, 30, 40], [], [1, 2, 66]]


def test_load_detections_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_detections(tmp_path / "absent.txt")


def test_align_renumbers_and_filters(tmp_path):
    names = tmp_path / "names.txt"
    names.write_text("a.png\nb.png\nc.png\n", encoding="utf-8")
    rgb = ["c.png", "a.png"]
    detections = [
        [0, 9, 73, 1, 2, 3, 4],
        [0, 9, 60, 1, 2, 3, 4],
        [1, 9, 66, 1, 2, 3, 4],
        [2, 9, 41, 5, 6, 7, 8],
    ]
    assert align_detections(names, rgb, detections) == [
        [1, 9, 73, 1, 2, 3, 4],
        [0, 9, 41, 5, 6, 7, 8],
    ]


def test_align_does_not_modify_input(tmp_path):
    names = tmp_path / "names.txt"
    names.write_text("a.png\n", encoding="utf-8")
    detections = [[0, 1, 73, 1, 2, 3, 4]]
    align_detections(names, ["x.png", "a.png"], detections)
    assert detections == [[0, 1, 73, 1, 2, 3, 4]]


def test_align_repeats_for_duplicate_names(tmp_path):
    names = tmp_path / "names.txt"
    names.write_text("a.png\n", encoding="utf-8")
    result = align_detections(names, ["a.png", "a.png"], [[0, 1, 73, 1, 2, 3, 4]])
    assert [row[0] for row in result] == [0, 1]