import asyncio

import pytest

from powerhub.errors import NotFoundError
from powerhub.recorder import LogRecorder


def _lines(path):
    return path.read_text(encoding="utf-8").splitlines()


def test_first_write_adds_header(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs")
    registry.report_telemetry("n1", 230.5, 0.4, 92.2)

    assert recorder.write("n1") is True
    assert recorder.write("n1") is True

    lines = _lines(recorder.log_path("n1"))
    assert lines[0] == "Timestamp,Voltage (V),Current (A),Power (W)"
    assert len(lines) == 3
    assert lines[1].endswith(",230.5,0.4,92.2")
    assert lines[1].split(",")[0].endswith("Z")


def test_absent_readings_are_empty_cells(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs")
    registry.register("n1", "n1")
    recorder.write("n1")
    assert _lines(recorder.log_path("n1"))[1].endswith(",,,")


def test_unknown_node_is_not_written(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs")
    assert recorder.write("ghost") is False
    assert not recorder.log_path("ghost").exists()


def test_log_path_stays_inside_logs_dir(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs")
    path = recorder.log_path("../../etc/passwd")
    assert path.parent == tmp_path / "logs"


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_halts_writes(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs", interval_seconds=0.05)
    registry.report_telemetry("n1", 230, 1, 230)

    recorder.start("n1")
    recorder.start("n1")
    assert recorder.active_count == 1
    await asyncio.sleep(0.3)

    recorder.stop("n1")
    assert recorder.is_logging("n1") is False
    written = len(_lines(recorder.log_path("n1")))
    assert written > 1

    await asyncio.sleep(0.2)
    assert len(_lines(recorder.log_path("n1"))) == written


def test_snapshot_copies_current_log(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs")
    with pytest.raises(NotFoundError):
        recorder.snapshot("n1")

    registry.report_telemetry("n1", 230, 1, 230)
    recorder.write("n1")
    path, filename = recorder.snapshot("n1")

    assert filename.startswith("node_n1_data_")
    assert filename.endswith(".csv")
    assert path.read_text() == recorder.log_path("n1").read_text()


def test_ids_that_sanitize_alike_get_separate_logs(registry, tmp_path):
    recorder = LogRecorder(registry, tmp_path / "logs")
    registry.report_telemetry("kitchen plug", 230, 1, 100)
    registry.report_telemetry("kitchen_plug", 230, 2, 200)
    recorder.write("kitchen plug")
    recorder.write("kitchen_plug")

    spaced = recorder.log_path("kitchen plug")
    plain = recorder.log_path("kitchen_plug")
    assert spaced != plain
    assert plain.name == "node_kitchen_plug_data.csv"
    assert _lines(spaced)[1].endswith(",230.0,1.0,100.0")
    assert _lines(plain)[1].endswith(",230.0,2.0,200.0")
    assert len(_lines(spaced)) == len(_lines(plain)) == 2
