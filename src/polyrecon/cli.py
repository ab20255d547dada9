"""CLI entry point for polygonal surface reconstruction.

Usage:
    polyrecon reconstruct -i in.vg -o out.obj      # Reconstruct a mesh
    polyrecon reconstruct -i in.vg -o out.ply -x 0.5 --solver branch_and_bound
    polyrecon solvers                               # List solver backends
    polyrecon info                                  # Show pipeline steps
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from polyrecon.core.logging import setup_logging
from polyrecon.steps.s05_face_selection.config import SolverKind

app = typer.Typer(
    name="polyrecon",
    help="Polygonal surface reconstruction from planar-segmented point clouds",
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


@app.command()
def reconstruct(
    input_path: Path = typer.Option(Path("in.vg"), "--input", "-i", help="Input point cloud (*.vg, *.json)"),
    output_path: Path = typer.Option(
        Path("out.obj"), "--output", "-o", help="Output mesh (*.obj, *.off, *.ply, *.stl, *.glb)"
    ),
    lambda_data_fitting: Optional[float] = typer.Option(
        None, "--lambda_data_fitting", "-f", help="Data-fitting weight, default 0.43"
    ),
    lambda_model_coverage: Optional[float] = typer.Option(
        None, "--lambda_model_coverage", "-c", help="Model-coverage weight, default 0.27"
    ),
    lambda_model_complexity: Optional[float] = typer.Option(
        None, "--lambda_model_complexity", "-x", help="Model-complexity weight, default 0.30"
    ),
    solver: Optional[SolverKind] = typer.Option(None, "--solver", help="Integer-programming backend"),
    config: Optional[Path] = typer.Option(None, "--config", help="Reconstruction config YAML"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Reconstruct a watertight polygonal mesh from a segmented point cloud."""
    try:
        setup_logging(log_level, console=console)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level")
    from polyrecon.core.contracts import ReconstructionConfig
    from polyrecon.core.errors import ReconstructionError
    from polyrecon.core.pipeline_runner import load_reconstruction_config, run_reconstruction

    try:
        cfg = load_reconstruction_config(config) if config else ReconstructionConfig()
        cfg = cfg.with_overrides(
            lambda_data_fitting=lambda_data_fitting,
            lambda_model_coverage=lambda_model_coverage,
            lambda_model_complexity=lambda_model_complexity,
            solver=solver,
        )
        sel = cfg.selection
        console.print(
            f"[green]Reconstructing[/green] {input_path} -> {output_path} "
            f"(fitting={sel.lambda_data_fitting}, coverage={sel.lambda_model_coverage}, "
            f"complexity={sel.lambda_model_complexity}, solver={sel.solver.value})"
        )
        report = run_reconstruction(input_path, output_path, cfg)
    except ReconstructionError as e:
        console.print(f"[red]{type(e).__name__}: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title="Reconstruction")
    table.add_column("Step", style="cyan")
    table.add_column("Time (s)", justify="right", style="yellow")
    for meta in report.steps:
        table.add_row(meta.step_name, f"{meta.elapsed_seconds:.2f}")
    console.print(table)
    console.print(
        f"[green]Done.[/green] {report.num_selected_faces} faces selected from "
        f"{report.num_candidate_faces} candidates "
        f"({report.num_groups} planes, {report.num_points} points), "
        f"objective {report.objective:.6f} -> {report.output_path}"
    )


@app.command()
def solvers() -> None:
    """List available integer-programming backends."""
    from polyrecon.steps.s05_face_selection._solvers import available_solvers

    table = Table(title="Solvers")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="green")
    for kind, cls in available_solvers().items():
        table.add_row(kind.value, cls.description)
    console.print(table)


@app.command()
def info() -> None:
    """Show pipeline steps and their error kinds."""
    from polyrecon.core.pipeline_runner import STEP_MODULES, import_step_class

    table = Table(title="Pipeline: polyrecon")
    table.add_column("#", style="dim")
    table.add_column("Step", style="cyan")
    table.add_column("Module", style="green")
    table.add_column("Config", style="yellow")
    table.add_column("Fails with", style="red")

    for i, (name, module, section) in enumerate(STEP_MODULES):
        step_cls = import_step_class(module)
        table.add_row(f"s{i:02d}", name, module, section, step_cls.failure_type.__name__)
    console.print(table)


if __name__ == "__main__":
    app()
