"""Simulate command implementation."""

from pathlib import Path
from typing import Optional

import typer

from phylolik.simulate.simulator import Simulator

from .common import build_model, configure_logging, load_tree, reporting_errors


def run_simulate(
    tree: Path,
    model: str,
    gamma: int,
    params: Optional[list[str]],
    length: int,
    seed: Optional[int],
    internal: bool,
    output: Optional[Path],
    verbose: bool,
):
    """Simulate an alignment on a tree and write it as FASTA."""
    configure_logging(verbose)
    with reporting_errors():
        tree_obj = load_tree(tree)
        model_obj, parameters = build_model(model, gamma, params)
        simulator = Simulator(model_obj, tree_obj, parameters, seed=seed, internal=internal)
        alignment = simulator.get_alignment(length)

    if output:
        alignment.to_fasta(output)
        typer.echo(f"Simulated {length} sites written to {output}", err=True)
    else:
        typer.echo(alignment.format_fasta(), nl=False)
