"""Ancestral reconstruction command implementation."""

from pathlib import Path
from typing import Optional

import typer

from phylolik.ancestral.joint import JointMethod, joint_reconstructor
from phylolik.ancestral.marginal import MarginalReconstructor

from .common import build_model, configure_logging, load_alignment, load_tree, reporting_errors


def run_ancestral(
    alignment: Path,
    tree: Path,
    model: str,
    gamma: int,
    params: Optional[list[str]],
    method: str,
    algorithm: str,
    output: Optional[Path],
    verbose: bool,
):
    """Reconstruct ancestral states and write them as FASTA or TSV."""
    configure_logging(verbose)
    with reporting_errors():
        aln = load_alignment(alignment)
        tree_obj = load_tree(tree)
        model_obj, parameters = build_model(model, gamma, params)

        if method == "marginal":
            result = MarginalReconstructor(model_obj, aln, tree_obj).calculate(parameters)
            text = _marginal_table(aln, tree_obj.internal, model_obj.states, result)
        else:
            reconstructor = joint_reconstructor(model_obj, aln, tree_obj, method=JointMethod(algorithm))
            text = reconstructor.calculate(parameters).format_fasta()

    if output:
        with open(output, 'w') as f:
            f.write(text)
        typer.echo(f"Results written to {output}", err=True)
    else:
        typer.echo(text, nl=False)


def _marginal_table(aln, nodes, states, result) -> str:
    lines = ["\t".join(["site", "node", *states])]
    for i, site in enumerate(aln, start=1):
        site_result = result.site_result(site)
        for node in nodes:
            row = site_result.probabilities(node)
            lines.append("\t".join([str(i), node, *(f"{p:.6f}" for p in row)]))
    return "\n".join(lines) + "\n"
