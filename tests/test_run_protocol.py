from __future__ import annotations

import json
from pathlib import Path

from imaging_msms.run_protocol import (
    copy_input_file,
    create_run_id,
    prepare_run_dir,
    slugify,
    update_latest_pointer,
    write_json,
)


def test_slugify():
    assert slugify("  Mouse Brain #2 ") == "mouse-brain-2"
    assert slugify("!!!") == "run"


def test_run_ids_are_unique_and_named():
    first = create_run_id("Plate A")
    second = create_run_id("Plate A")
    assert first.endswith("_plate-a")
    assert first != second


def test_prepare_run_dir_layout(tmp_path: Path):
    paths = prepare_run_dir(tmp_path, "plate")
    assert paths.run_dir.parent == tmp_path
    assert paths.input_dir.is_dir()
    assert paths.acquisition_dir.is_dir()
    assert paths.acquisition_dir.parent == paths.artifacts_dir
    assert paths.manifest_path == paths.run_dir / "manifest.json"


def test_copy_input_and_write_json(tmp_path: Path):
    paths = prepare_run_dir(tmp_path / "runs", "plate")
    source = tmp_path / "plate.json"
    source.write_text("{}", encoding="utf-8")

    copied = copy_input_file(source, paths.input_dir)
    assert copied == paths.input_dir / "plate.json"
    assert copy_input_file(copied, paths.input_dir) == copied

    write_json(paths.metrics_path, {"status": "finished"})
    assert json.loads(paths.metrics_path.read_text(encoding="utf-8")) == {"status": "finished"}
    assert not paths.metrics_path.with_suffix(".json.tmp").exists()


def test_latest_pointer_follows_newest_run(tmp_path: Path):
    first = prepare_run_dir(tmp_path, "one")
    update_latest_pointer(tmp_path, first.run_dir)
    second = prepare_run_dir(tmp_path, "two")
    update_latest_pointer(tmp_path, second.run_dir)

    latest = tmp_path / "latest"
    if latest.is_symlink():
        assert latest.resolve() == second.run_dir.resolve()
    else:
        marker = latest / "latest_run.txt"
        assert marker.read_text(encoding="utf-8") == second.run_dir.name
