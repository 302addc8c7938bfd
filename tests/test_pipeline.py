from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import pytest
import trimesh

from approximated_stone import SlicingConfig
from nesting_optimizer import NestingConfig
from pipeline import PipelineConfig, build_stones, run_pipeline
from run_protocol import copy_inputs, prepare_run_dir, slugify, update_latest_pointer
from stone_errors import NoStoneBuiltError

REPO_ROOT = Path(__file__).resolve().parent.parent
SLICING = SlicingConfig(thickness=10.0, overlap=1.0, angle_step_deg=5.0)


@pytest.fixture
def thin_mesh_file(tmp_path) -> str:
    path = tmp_path / "meshes" / "pebble.stl"
    path.parent.mkdir(parents=True, exist_ok=True)
    trimesh.creation.box(extents=[30, 30, 5]).export(str(path))
    return str(path)


def test_slugify():
    assert slugify("  Stone Wall #2 ") == "stone-wall-2"
    assert slugify("***") == "run"


def test_prepare_run_dir_and_latest(tmp_path):
    paths = prepare_run_dir(str(tmp_path), "My Run")
    assert paths.run_id.endswith("my-run")
    assert paths.input_dir.is_dir()
    assert paths.artifacts_dir.is_dir()
    assert paths.artifact("dxf", "a.dxf").parent.is_dir()

    update_latest_pointer(str(tmp_path), paths.run_dir)
    latest = tmp_path / "latest"
    assert latest.exists()


def test_copy_inputs_rejects_repeated_stone_id(cylinder_mesh_file, tmp_path):
    paths = prepare_run_dir(str(tmp_path), "dup")
    with pytest.raises(ValueError):
        copy_inputs([("cylinder", cylinder_mesh_file)] * 2, paths)


def test_build_stones_isolates_failures(cylinder_mesh_file, thin_mesh_file, tmp_path):
    missing = str(tmp_path / "missing.stl")
    stones, failures = build_stones([cylinder_mesh_file, thin_mesh_file, missing], SLICING)
    assert [s.stone_id for s in stones] == ["cylinder"]
    assert set(failures) == {thin_mesh_file, missing}
    assert "too thin" in failures[thin_mesh_file]


def test_build_stones_unique_ids(cylinder_mesh_file):
    stones, _ = build_stones([cylinder_mesh_file, cylinder_mesh_file], SLICING)
    assert [s.stone_id for s in stones] == ["cylinder", "cylinder-1"]


def test_build_stones_skips_ids_already_taken(cylinder_mesh_file):
    suffixed = Path(cylinder_mesh_file).with_name("cylinder-1.stl")
    suffixed.write_bytes(Path(cylinder_mesh_file).read_bytes())
    stones, _ = build_stones(
        [cylinder_mesh_file, cylinder_mesh_file, str(suffixed)], SLICING,
    )
    assert [s.stone_id for s in stones] == ["cylinder", "cylinder-1", "cylinder-1-1"]


def test_preview_run(cylinder_mesh_file, tmp_path):
    runs = tmp_path / "runs"
    config = PipelineConfig(slicing=SLICING, mode="preview", runs_dir=str(runs))
    result = run_pipeline([cylinder_mesh_file], config)

    assert len(result.stones) == 1
    assert result.nesting is None
    for kind in ("mesh", "dxf", "png"):
        assert len(result.artifacts[kind]) == 1
        assert Path(result.artifacts[kind][0]).exists()

    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["mode"] == "preview"
    assert manifest["config"]["slicing"]["thickness"] == 10.0
    metrics = json.loads(Path(result.metrics_path).read_text())
    assert metrics["stones"][0]["layers"] == 10
    assert "# Run" in Path(result.summary_path).read_text()
    assert (runs / "latest").exists()


def test_preview_stacks_several_stones(cylinder_mesh_file, tmp_path):
    config = PipelineConfig(
        slicing=SLICING, mode="preview", runs_dir=str(tmp_path), render_layers=True,
    )
    result = run_pipeline([cylinder_mesh_file, cylinder_mesh_file], config)
    assert any(p.endswith("stacked.stl") for p in result.artifacts["mesh"])
    # two contact sheets plus one PNG per layer
    assert len(result.artifacts["png"]) == 2 + 20
    stacked = trimesh.load(result.artifacts["mesh"][-1])
    assert stacked.bounds[1][2] == pytest.approx(200.0)


def test_milling_run(cylinder_mesh_file, tmp_path):
    config = PipelineConfig(
        slicing=SLICING,
        mode="milling",
        nesting=NestingConfig(production_count=2),
        runs_dir=str(tmp_path),
        flatten=True,
    )
    result = run_pipeline([cylinder_mesh_file], config)

    assert result.nesting is not None
    assert result.nesting.layers_requested == 20
    assert Path(result.artifacts["dxf"][0]).name == "milling.dxf"
    assert Path(result.artifacts["svg"][0]).exists()

    metrics = json.loads(Path(result.metrics_path).read_text())
    assert metrics["nesting"]["total_sheets"] == 20
    assert len(metrics["non_fit_elevations"]) == 20


def test_assess_run_writes_no_drawings(cylinder_mesh_file, tmp_path):
    config = PipelineConfig(slicing=SLICING, mode="assess", runs_dir=str(tmp_path))
    result = run_pipeline([cylinder_mesh_file], config)
    assert result.artifacts == {}
    assert result.nesting.compactization_factor == pytest.approx(1.0)
    assert "Compactization factor" in Path(result.summary_path).read_text()


def test_same_named_inputs_keep_separate_copies(tmp_path):
    sources = []
    for folder, extents in (("a", [40, 40, 60]), ("b", [20, 20, 90])):
        path = tmp_path / folder / "stone.stl"
        path.parent.mkdir(parents=True)
        trimesh.creation.box(extents=extents).export(str(path))
        sources.append(str(path))

    config = PipelineConfig(slicing=SLICING, mode="assess", runs_dir=str(tmp_path / "runs"))
    result = run_pipeline(sources, config)
    assert [s.stone_id for s in result.stones] == ["stone", "stone-1"]

    input_dir = Path(result.run_dir) / "input"
    assert sorted(p.name for p in input_dir.iterdir()) == ["stone-1.stl", "stone.stl"]
    for name, source in (("stone.stl", sources[0]), ("stone-1.stl", sources[1])):
        assert (input_dir / name).stat().st_size == Path(source).stat().st_size
    assert (input_dir / "stone.stl").read_bytes() != (input_dir / "stone-1.stl").read_bytes()

    manifest = json.loads(Path(result.manifest_path).read_text())
    copies = [entry["copy"] for entry in manifest["inputs"]]
    assert len(set(copies)) == 2
    assert [entry["source"] for entry in manifest["inputs"]] == sources


def test_no_stone_aborts_without_output(thin_mesh_file, tmp_path):
    runs = tmp_path / "runs"
    config = PipelineConfig(slicing=SLICING, runs_dir=str(runs))
    with pytest.raises(NoStoneBuiltError) as info:
        run_pipeline([thin_mesh_file], config)
    assert thin_mesh_file in info.value.failures
    assert not runs.exists()


def test_unknown_mode():
    with pytest.raises(ValueError):
        PipelineConfig(slicing=SLICING, mode="carve")


def _cli(*args: str) -> subprocess.CompletedProcess:
    cmd = [sys.executable, str(REPO_ROOT / "scripts" / "digital_stone.py"), *args]
    return subprocess.run(cmd, capture_output=True, text=True)


def test_cli_milling_runs(cylinder_mesh_file, tmp_path):
    proc = _cli(
        "-f", cylinder_mesh_file, "-m", "milling", "-t", "10", "-o", "1",
        "-n", "2", "--angle-step", "5", "--runs-dir", str(tmp_path),
    )
    assert proc.returncode == 0, proc.stderr
    assert "Run:" in proc.stdout
    assert "Compactization factor: 1.000" in proc.stdout


def test_cli_fails_when_no_stone_built(thin_mesh_file, tmp_path):
    proc = _cli(
        "-f", thin_mesh_file, "-m", "preview", "-t", "10", "-o", "1",
        "--runs-dir", str(tmp_path),
    )
    assert proc.returncode == 1
    assert "Error:" in proc.stdout


def test_cli_rejects_bad_arguments(cylinder_mesh_file, tmp_path):
    proc = _cli("-f", cylinder_mesh_file, "-m", "carve", "-t", "10", "-o", "1")
    assert proc.returncode == 2

    proc = _cli(
        "-f", cylinder_mesh_file, "-m", "assess", "-t", "10", "-o", "1",
        "--angle-step", "7", "--runs-dir", str(tmp_path),
    )
    assert proc.returncode == 2
