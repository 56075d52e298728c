import csv

import numpy as np

from apriltag_pose.output import CsvOutput, NullOutput
from apriltag_pose.types import TagDetection


def _detection(tag_id=5):
    T = np.eye(4)
    T[:3, 3] = [0.1, -0.2, -0.3]
    corners = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0], [7.0, 8.0]])
    return TagDetection(tag_id, T, corners)


def test_csv_output_writes_header_and_rows(tmp_path):
    """CsvOutput should create parent dirs and emit one row per detection."""
    path = tmp_path / "out" / "detections.csv"
    sink = CsvOutput(path)
    sink.open()
    sink.write_detection("a.png", _detection(5))
    sink.write_detection("b.png", _detection(9))
    sink.close()
    sink.close()

    with path.open(newline="") as fh:
        rows = list(csv.reader(fh))

    assert rows[0] == CsvOutput.HEADER
    assert len(rows[0]) == 2 + 8 + 16
    assert rows[1][:4] == ["a.png", "5", "1.0", "2.0"]
    assert rows[2][1] == "9"
    assert float(rows[1][CsvOutput.HEADER.index("t13")]) == -0.2


def test_to_row_flattens_row_major():
    row = CsvOutput.to_row("x", _detection())
    assert row[2:10] == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0]
    assert row[10 + 3] == 0.1
    assert row[-1] == 1.0


def test_write_before_open_is_ignored(tmp_path):
    sink = CsvOutput(tmp_path / "never.csv")
    sink.write_detection("a.png", _detection())
    assert not (tmp_path / "never.csv").exists()


def test_null_output_accepts_everything():
    sink = NullOutput()
    sink.open()
    sink.write_detection("a.png", _detection())
    sink.close()
