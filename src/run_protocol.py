"""Run folders: every pipeline invocation writes into its own timestamped directory.

Layout::

    <runs_root>/<stamp>_<name>/
        input/          one copy per built stone, named <stone_id><suffix>
        artifacts/      STL / DXF / SVG / PNG outputs
        manifest.json   configuration, input records and artifact paths
        metrics.json    layer and nesting statistics
        summary.md      human-readable report
    <runs_root>/latest  -> most recent run

Input copies are named by stone id rather than by file name: two scans both
called ``stone.stl`` in different folders become ``stone.stl`` and
``stone-1.stl``, matching the ids their layers and artifacts carry.
"""

from __future__ import annotations

import json
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import numpy as np

from stone_errors import ExportError


@dataclass(frozen=True)
class InputRecord:
    """Where a stone's mesh came from and where the run keeps its copy."""
    stone_id: str
    source: Path
    copy: Path

    def to_dict(self) -> Dict[str, str]:
        return {
            "stone_id": self.stone_id,
            "source": str(self.source),
            "copy": str(self.copy),
        }


@dataclass
class RunPaths:
    run_id: str
    run_dir: Path
    input_dir: Path
    artifacts_dir: Path
    manifest_path: Path
    metrics_path: Path
    summary_path: Path

    def artifact(self, *parts: str) -> Path:
        """Path under the artifacts folder, creating parent directories."""
        path = self.artifacts_dir.joinpath(*parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def input_copy(self, stone_id: str, source: Path) -> Path:
        """Destination of *source* inside the input folder, keyed by stone id."""
        return self.input_dir / f"{stone_id}{source.suffix.lower()}"


def slugify(value: str) -> str:
    value = re.sub(r"[^a-z0-9]+", "-", value.strip().lower())
    return value.strip("-") or "run"


def create_run_id(run_name: str) -> str:
    # Microseconds keep back-to-back batches in separate folders.
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    return f"{stamp}_{slugify(run_name)}"


def prepare_run_dir(runs_root: str, run_name: str) -> RunPaths:
    run_id = create_run_id(run_name)
    run_dir = Path(runs_root) / run_id
    paths = RunPaths(
        run_id=run_id,
        run_dir=run_dir,
        input_dir=run_dir / "input",
        artifacts_dir=run_dir / "artifacts",
        manifest_path=run_dir / "manifest.json",
        metrics_path=run_dir / "metrics.json",
        summary_path=run_dir / "summary.md",
    )
    paths.input_dir.mkdir(parents=True, exist_ok=True)
    paths.artifacts_dir.mkdir(parents=True, exist_ok=True)
    return paths


def copy_inputs(
    inputs: Iterable[Tuple[str, str]],
    paths: RunPaths,
) -> List[InputRecord]:
    """Copy each ``(stone_id, mesh_path)`` pair into the run's input folder.

    Stone ids are unique within a batch, so every copy gets its own file even
    when several sources share a file name.

    Raises:
        ValueError: two pairs carry the same stone id.
        ExportError: a source could not be copied.
    """
    records: List[InputRecord] = []
    taken: Dict[Path, str] = {}
    for stone_id, mesh_path in inputs:
        source = Path(mesh_path)
        copy = paths.input_copy(stone_id, source)
        if copy in taken:
            raise ValueError(
                f"Stone ids {taken[copy]!r} and {stone_id!r} map to the same input copy {copy.name}"
            )
        taken[copy] = stone_id
        try:
            shutil.copy2(source, copy)
        except OSError as exc:
            raise ExportError("Input copy", str(copy), exc) from exc
        records.append(InputRecord(stone_id=stone_id, source=source, copy=copy))
    return records


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=_json_default)


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def update_latest_pointer(runs_root: str, run_dir: Path) -> None:
    """Point ``<runs_root>/latest`` at *run_dir*.

    A relative symlink where the filesystem allows it, otherwise a folder
    holding ``latest_run.txt`` with the run name.
    """
    latest = Path(runs_root) / "latest"
    if latest.is_symlink() or latest.is_file():
        latest.unlink()
    elif latest.is_dir():
        shutil.rmtree(latest)

    try:
        latest.symlink_to(os.path.relpath(run_dir, latest.parent))
    except OSError:
        latest.mkdir(parents=True, exist_ok=True)
        (latest / "latest_run.txt").write_text(run_dir.name, encoding="utf-8")
