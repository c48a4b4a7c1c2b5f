"""
twostate CLI Harness

CLI tool for driving and checking the two-state measurement engine.
Provides subcommands for:
  - sample: Regenerate a batch from (seed, bias, count) and tally it
  - run: Drive an engine through prepare / tick / reveal on simulated time
  - converge: Average observed fractions over many seeds against the bias
  - restore: Rebuild an engine from a snapshot and show what it resolves to

Exit codes:
  - 0: success
  - 1: check failed (actionable)
  - 2: fatal error (missing file, bad input)
"""

from __future__ import annotations

import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import numpy as np
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tqdm import tqdm

from receipts import StopRule, merkle, write_ledger_jsonl
from twostate import (
    MANDATORY_SCENARIOS,
    BiasProperty,
    MeasurementSnapshot,
    MeasurementState,
    StepTimer,
    build_engine,
    convergence_sweep,
    load_config,
    outcome_space_for,
    sample_indices,
    tally_indices,
)
from twostate.constants import CONVERGENCE_TOLERANCE

# Rich console for output
console = Console()


def print_success(message: str) -> None:
    """Print a success message with green checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message with red X."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message with yellow warning sign."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def _make_fraction_bar(fraction: float, width: int = 20) -> str:
    """Create a visual bar for the label[0] fraction."""
    filled = int(round(fraction * width))
    return "█" * filled + "░" * (width - filled)


def _tally_table(title: str, tally_dict: Dict[str, Any], labels) -> Table:
    table = Table(title=title)
    table.add_column("label")
    table.add_column("count", justify="right")
    table.add_column("fraction", justify="right")
    total = tally_dict["total"] or 1
    for label in labels:
        count = tally_dict[label]
        table.add_row(label, str(count), f"{count / total:.4f}")
    return table


# --- CLI Group ---

@click.group()
def twostate():
    """Two-state measurement engine: sampling, lifecycle runs, snapshots."""
    pass


# --- sample ---

@twostate.command("sample")
@click.option("--seed", "-s", type=float, required=True, help="Seed in [0, 1]; 0 and 1 are sentinels")
@click.option("--bias", "-b", type=float, default=0.5, show_default=True, help="Probability of label[0]")
@click.option("--count", "-n", type=int, default=100, show_default=True, help="Batch size")
@click.option("--system", type=click.Choice(["classical", "quantum"]), default="classical")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def sample_cmd(seed: float, bias: float, count: int, system: str, output: str) -> None:
    """Regenerate a batch from one seed and tally it."""
    space = outcome_space_for(system)
    try:
        indices = sample_indices(seed, bias, count)
    except ValueError as e:
        if output == "json":
            click.echo(json.dumps({"error": str(e)}))
        else:
            print_error(str(e))
        sys.exit(2)

    tally = tally_indices(indices, space.labels)
    result = {"seed": seed, "bias": bias, "count": count, "system": system, **tally.as_dict()}

    if output == "json":
        click.echo(json.dumps(result, indent=2))
    else:
        console.print(_tally_table(f"seed={seed} bias={bias}", tally.as_dict(), space.labels))
        console.print(f"{space.labels[0]:>8} {_make_fraction_bar(tally.fraction_label0)} "
                      f"{tally.fraction_label0:.2%}")


# --- run ---

@twostate.command("run")
@click.option("--scenario", type=click.Choice(sorted(MANDATORY_SCENARIOS)), default="CLASSICAL_BATCH")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file (overrides --scenario)")
@click.option("--bias", "-b", type=float, default=None, help="Override the config's initial bias")
@click.option("--count", "-n", type=int, default=None, help="Active count for batch scenarios")
@click.option("--reveal/--no-reveal", default=True, help="Reveal once prepared")
@click.option("--tick-ms", type=click.FloatRange(min=0, min_open=True), default=250.0, show_default=True, help="Host tick length")
@click.option("--rng-seed", type=int, default=None, help="Seed for drawing fresh seeds")
@click.option("--receipts", "receipts_path", type=click.Path(), help="Write receipt ledger as JSONL")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def run_cmd(scenario: str, config_path: Optional[str], bias: Optional[float], count: Optional[int],
            reveal: bool, tick_ms: float, rng_seed: Optional[int], receipts_path: Optional[str],
            output: str) -> None:
    """Prepare an engine, tick simulated time until it settles, then measure."""
    try:
        config = load_config(config_path) if config_path else MANDATORY_SCENARIOS[scenario]
        if bias is not None:
            config = replace(config, initial_bias=bias)
        bias_property = BiasProperty(config.initial_bias)
        timer = StepTimer()
        engine = build_engine(config, bias_property, timer, np.random.default_rng(rng_seed))
        if count is not None:
            engine.active_count = count

        timeline: List[Dict[str, Any]] = []

        def record() -> None:
            timeline.append({"t_ms": timer.now_ms, "state": engine.measurement_state.value})

        record()
        engine.prepare(reveal_when_prepared=reveal)
        record()
        limit_ms = config.preparation_time_ms + tick_ms
        while engine.preparation_pending and timer.now_ms <= limit_ms:
            timer.step(tick_ms)
            record()

        # without --reveal a quantum engine stays uncollapsed
        result = None
        if reveal or engine.measurement_state is not MeasurementState.READY:
            result = engine.measure()
            record()

        summary: Dict[str, Any] = {
            "scenario": config.scenario_name,
            "system_type": config.system_type,
            "bias": bias_property.value,
            "timeline": timeline,
            "snapshot": engine.snapshot().to_dict(),
            "count": result.count if result is not None else 0,
            "ledger_root": merkle(list(engine.receipt_ledger)),
            "receipts": len(engine.receipt_ledger),
        }
        if engine.is_batch and engine.measurement_state is MeasurementState.REVEALED:
            summary["tally"] = engine.tally().as_dict()
        elif not engine.is_batch and result is not None:
            summary["value"] = result.values[0]

        if receipts_path:
            path = Path(receipts_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w") as fh:
                write_ledger_jsonl(engine.receipt_ledger, fh)
    except (StopRule, ValueError, FileNotFoundError) as e:
        if output == "json":
            click.echo(json.dumps({"error": str(e)}))
        else:
            print_error(f"Run failed: {e}")
        sys.exit(2)

    if output == "json":
        click.echo(json.dumps(summary, indent=2))
        return

    table = Table(title=f"{config.scenario_name} timeline")
    table.add_column("t (ms)", justify="right")
    table.add_column("state")
    for row in timeline:
        table.add_row(f"{row['t_ms']:.0f}", row["state"])
    console.print(table)

    snapshot = summary["snapshot"]
    content = (
        f"state:        {snapshot['measurement_state']}\n"
        f"active_count: {snapshot['active_count']}\n"
        f"seed:         {snapshot['seed']!r}\n"
        f"ledger_root:  {summary['ledger_root'][:16]}... ({summary['receipts']} receipts)"
    )
    console.print(Panel(content, title="[bold]Snapshot[/bold]", border_style="green"))
    if "tally" in summary:
        console.print(_tally_table("Tally", summary["tally"], engine.valid_values))
    elif "value" in summary:
        print_success(f"Measured value: {summary['value']}")
    if receipts_path:
        print_success(f"Saved receipts: {receipts_path}")


# --- converge ---

@twostate.command("converge")
@click.option("--bias", "-b", type=float, default=0.5, show_default=True)
@click.option("--count", "-n", type=int, default=10000, show_default=True)
@click.option("--seeds", type=int, default=200, show_default=True, help="Number of distinct seeds")
@click.option("--tolerance", type=float, default=CONVERGENCE_TOLERANCE, show_default=True)
@click.option("--rng-seed", type=int, default=None, help="Seed for drawing the seeds")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def converge_cmd(bias: float, count: int, seeds: int, tolerance: float,
                 rng_seed: Optional[int], output: str) -> None:
    """Check that observed label[0] fractions converge on the bias."""
    try:
        progress = None if output == "json" else (lambda it: tqdm(it, desc="Sampling seeds"))
        report = convergence_sweep(bias, count, seeds, np.random.default_rng(rng_seed),
                                   tolerance=tolerance, progress=progress)
    except ValueError as e:
        if output == "json":
            click.echo(json.dumps({"error": str(e)}))
        else:
            print_error(str(e))
        sys.exit(2)

    if output == "json":
        click.echo(json.dumps(report.as_dict(), indent=2))
    else:
        console.print(
            f"mean fraction {report.mean_fraction:.5f} vs bias {bias:.5f} "
            f"(|Δ| = {report.deviation:.5f}, tolerance {tolerance})"
        )
        if report.passed:
            print_success("Converged")
        else:
            print_warning("Did not converge within tolerance")

    if not report.passed:
        sys.exit(1)


# --- restore ---

@twostate.command("restore")
@click.argument("snapshot_json")
@click.option("--bias", "-b", type=float, default=0.5, show_default=True)
@click.option("--system", type=click.Choice(["classical", "quantum"]), default="classical")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def restore_cmd(snapshot_json: str, bias: float, system: str, output: str) -> None:
    """Restore SNAPSHOT_JSON (inline JSON or a path) into a fresh batch engine."""
    try:
        if snapshot_json.lstrip().startswith("{"):
            text = snapshot_json
        else:
            text = Path(snapshot_json).read_text()
        snapshot = MeasurementSnapshot.from_json(text)
        config = MANDATORY_SCENARIOS[f"{system.upper()}_BATCH"]
        if snapshot.active_count == 1:
            config = MANDATORY_SCENARIOS[f"{system.upper()}_SINGLE"]
        engine = build_engine(config, BiasProperty(bias), StepTimer())
        engine.restore_snapshot(snapshot)
    except (StopRule, ValueError, OSError) as e:
        if output == "json":
            click.echo(json.dumps({"error": str(e)}))
        else:
            print_error(f"Restore failed: {e}")
        sys.exit(2)

    result: Dict[str, Any] = {
        "restored_state": snapshot.measurement_state.value,
        "resolved_state": engine.measurement_state.value,
        "preparation_pending": engine.preparation_pending,
        "snapshot": engine.snapshot().to_dict(),
    }
    if engine.measurement_state is MeasurementState.REVEALED and engine.is_batch:
        result["tally"] = engine.tally().as_dict()

    if output == "json":
        click.echo(json.dumps(result, indent=2))
    else:
        console.print(f"restored {result['restored_state']} → {result['resolved_state']}")
        if "tally" in result:
            console.print(_tally_table("Tally", result["tally"], engine.valid_values))
        print_success("Snapshot restored")


# --- CLI entry point ---

def main() -> int:
    """Entry point for the twostate CLI."""
    try:
        twostate(standalone_mode=False)
        return 0
    except click.ClickException as e:
        e.show()
        return 2
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
