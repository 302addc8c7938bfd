"""Batch pipeline: scanned meshes -> approximated stones -> run artifacts.

Modes:
  - preview: preview mesh (STL), layer DXF and PNG renders per stone
  - milling: nest every layer onto sheets and write the milling DXF (+ SVG)
  - assess:  nest and report material statistics only

Stones that fail to load or slice are logged and skipped; the run is aborted
before anything is written only when no stone survives.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Set

import trimesh

from approximated_stone import ApproximatedStone, SlicingConfig, stack_stones
from dxf_exporter import DXFExportConfig, nesting_to_dxf, stone_to_dxf
from nesting_optimizer import NestingConfig, NestingResult, nest_stones
from run_protocol import (
    copy_inputs,
    prepare_run_dir,
    update_latest_pointer,
    write_json,
    write_text,
)
from section_renderer import RenderConfig, render_section_png, render_stone_png
from stone_errors import NoStoneBuiltError, StoneError
from stone_mesh import load_stone_mesh, save_mesh
from svg_exporter import nesting_to_svg

logger = logging.getLogger(__name__)

PREVIEW = "preview"
MILLING = "milling"
ASSESS = "assess"
MODES = (PREVIEW, MILLING, ASSESS)


@dataclass
class PipelineConfig:
    slicing: SlicingConfig
    mode: str = PREVIEW
    nesting: NestingConfig = field(default_factory=NestingConfig)
    runs_dir: str = "runs"
    run_name: str = "stones"
    flatten: bool = False
    recenter: bool = False
    export_svg: bool = True
    render_layers: bool = False     # one PNG per layer in preview mode
    dxf: DXFExportConfig = field(default_factory=DXFExportConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode {self.mode!r}; use one of {MODES}")


@dataclass
class PipelineResult:
    run_id: str
    run_dir: str
    mode: str
    stones: List[ApproximatedStone]
    failures: Dict[str, str]
    manifest_path: str
    metrics_path: str
    summary_path: str
    nesting: Optional[NestingResult] = None
    artifacts: Dict[str, List[str]] = field(default_factory=dict)


def build_stones(
    mesh_paths: Sequence[str],
    slicing: SlicingConfig,
    recenter: bool = False,
):
    """Load and slice every mesh, isolating per-stone failures.

    Returns:
        (stones, failures) where failures maps mesh path to error message.
    """
    stones: List[ApproximatedStone] = []
    failures: Dict[str, str] = {}
    used_ids: Set[str] = set()
    for path in mesh_paths:
        try:
            data = load_stone_mesh(path, recenter=recenter)
            stone_id, seen = data.name, 0
            while stone_id in used_ids:
                seen += 1
                stone_id = f"{data.name}-{seen}"
            used_ids.add(stone_id)
            stones.append(ApproximatedStone.from_mesh(data, slicing, stone_id=stone_id))
        except StoneError as exc:
            logger.error("Skipping %s: %s", path, exc)
            failures[path] = str(exc)
    return stones, failures


def run_pipeline(mesh_paths: Sequence[str], config: PipelineConfig) -> PipelineResult:
    """Run one batch and write its run folder.

    Raises:
        NoStoneBuiltError: no input produced a stone; nothing is written.
    """
    started = time.perf_counter()
    stones, failures = build_stones(mesh_paths, config.slicing, config.recenter)
    if not stones:
        raise NoStoneBuiltError(failures)

    paths = prepare_run_dir(config.runs_dir, config.run_name)
    # Stones come back in input order, so surviving paths pair up with them.
    built_paths = [p for p in mesh_paths if p not in failures]
    inputs = copy_inputs(
        [(stone.stone_id, path) for stone, path in zip(stones, built_paths)], paths,
    )

    artifacts: Dict[str, List[str]] = {}
    nesting = None

    if config.mode == PREVIEW:
        artifacts = _write_previews(stones, paths, config)
    else:
        nesting = nest_stones(stones, config.nesting)
        if config.mode == MILLING:
            artifacts = _write_milling(nesting, paths, config)

    elapsed = time.perf_counter() - started

    metrics = {
        "run_id": paths.run_id,
        "mode": config.mode,
        "elapsed_s": round(elapsed, 3),
        "stones": [stone.to_dict() for stone in stones],
        "failures": failures,
        "nesting": nesting.to_dict() if nesting is not None else None,
    }
    if nesting is not None:
        metrics["positioned_elevations"] = nesting.positioned_elevations
        metrics["non_fit_elevations"] = nesting.non_fit_elevations
    write_json(paths.metrics_path, metrics)

    write_text(
        paths.summary_path,
        _build_summary(paths.run_id, config.mode, stones, failures, nesting, elapsed),
    )

    manifest = {
        "run_id": paths.run_id,
        "mode": config.mode,
        "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "inputs": [record.to_dict() for record in inputs],
        "config": {
            "slicing": asdict(config.slicing),
            "nesting": asdict(config.nesting),
            "flatten": config.flatten,
            "recenter": config.recenter,
            "export_svg": config.export_svg,
        },
        "artifacts": artifacts,
    }
    write_json(paths.manifest_path, manifest)
    update_latest_pointer(config.runs_dir, paths.run_dir)

    return PipelineResult(
        run_id=paths.run_id,
        run_dir=str(paths.run_dir),
        mode=config.mode,
        stones=stones,
        failures=failures,
        manifest_path=str(paths.manifest_path),
        metrics_path=str(paths.metrics_path),
        summary_path=str(paths.summary_path),
        nesting=nesting,
        artifacts=artifacts,
    )


def _write_previews(stones, paths, config: PipelineConfig) -> Dict[str, List[str]]:
    artifacts: Dict[str, List[str]] = {"mesh": [], "dxf": [], "png": []}
    for stone in stones:
        stem = stone.stone_id
        artifacts["mesh"].append(
            save_mesh(stone.to_mesh(), str(paths.artifact("mesh", f"{stem}.stl")))
        )
        artifacts["dxf"].append(
            stone_to_dxf(stone, str(paths.artifact("dxf", f"{stem}.dxf")), config.dxf)
        )
        artifacts["png"].append(
            render_stone_png(stone, str(paths.artifact("png", f"{stem}.png")), config.render)
        )
        if config.render_layers:
            for section in stone.sections:
                target = paths.artifact("png", stem, f"{section.name}.png")
                artifacts["png"].append(
                    render_section_png(section, str(target), config.render)
                )

    if len(stones) > 1:
        stack_stones(stones)
        combined = trimesh.util.concatenate([stone.to_mesh() for stone in stones])
        artifacts["mesh"].append(
            save_mesh(combined, str(paths.artifact("mesh", "stacked.stl")))
        )
    return artifacts


def _write_milling(nesting: NestingResult, paths, config: PipelineConfig) -> Dict[str, List[str]]:
    artifacts = {
        "dxf": [nesting_to_dxf(
            nesting,
            str(paths.artifact("milling.dxf")),
            flatten=config.flatten,
            config=config.dxf,
        )],
    }
    if config.export_svg:
        artifacts["svg"] = [nesting_to_svg(
            nesting,
            str(paths.artifact("milling.svg")),
            bin_spacing=config.dxf.bin_spacing,
            unfit_spacing=config.dxf.unfit_spacing,
        )]
    return artifacts


def _build_summary(
    run_id: str,
    mode: str,
    stones: Sequence[ApproximatedStone],
    failures: Dict[str, str],
    nesting: Optional[NestingResult],
    elapsed_s: float,
) -> str:
    lines = [
        f"# Run {run_id}",
        "",
        f"- Mode: **{mode}**",
        f"- Duration: {elapsed_s:.2f}s",
        f"- Stones: {len(stones)} built, {len(failures)} skipped",
        f"- Layers: {sum(len(s) for s in stones)}",
    ]
    if nesting is not None:
        lines += [
            f"- Layers requested: {nesting.layers_requested}",
            f"- Sheets: {nesting.total_sheets} "
            f"({len(nesting.bins)} bins, {len(nesting.unable_to_fit)} unable to fit)",
            f"- Stock volume: {nesting.total_stock_volume:.1f}",
            f"- Useful volume: {nesting.useful_volume:.1f}",
            f"- Volume efficiency: {nesting.volume_efficiency * 100:.1f}%",
            f"- Compactization factor: {nesting.compactization_factor:.3f}",
        ]

    lines += ["", "## Stones"]
    for stone in stones:
        lines.append(
            f"- {stone.stone_id}: {len(stone)} layers, height {stone.total_height:.1f}"
        )
    if failures:
        lines += ["", "## Skipped"]
        for path, message in failures.items():
            lines.append(f"- {path}: {message}")
    return "\n".join(lines) + "\n"
