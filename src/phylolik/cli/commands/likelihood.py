"""Likelihood command implementation."""

import json
from pathlib import Path
from typing import Optional

import typer

from phylolik.likelihood.calculator import LikelihoodCalculator

from .common import build_model, configure_logging, load_alignment, load_tree, reporting_errors


def run_likelihood(
    alignment: Path,
    tree: Path,
    model: str,
    gamma: int,
    params: Optional[list[str]],
    format: str,
    sites: bool,
    verbose: bool,
):
    """Compute and print the log-likelihood of an alignment on a tree."""
    configure_logging(verbose)
    with reporting_errors():
        aln = load_alignment(alignment)
        tree_obj = load_tree(tree)
        model_obj, parameters = build_model(model, gamma, params)

        calculator = LikelihoodCalculator(model_obj, aln, tree_obj)
        result = calculator.calculate(parameters)
        site_lnl = [result.site(s).log_likelihood for s in aln] if sites else None

    if format == "json":
        payload = {
            "model": model.upper(),
            "gamma_categories": gamma,
            "parameters": parameters.values(),
            "log_likelihood": result.log_likelihood,
        }
        if site_lnl is not None:
            payload["site_log_likelihoods"] = site_lnl
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"Model:          {model.upper()}" + (f"+G{gamma}" if gamma else ""))
    typer.echo(f"Sites:          {aln.n_sites} ({len(aln.unique_sites())} patterns)")
    typer.echo(f"Log-likelihood: {result.log_likelihood:.6f}")
    if site_lnl is not None:
        typer.echo("")
        typer.echo("site\tlnL")
        for i, value in enumerate(site_lnl, start=1):
            typer.echo(f"{i}\t{value:.6f}")
