"""Main CLI application for phylolik."""

import typer
from pathlib import Path
from typing import List, Optional
from enum import Enum

from phylolik.ancestral.joint import JointMethod

app = typer.Typer(
    name="phylolik",
    help="Phylogenetic likelihood, ancestral reconstruction and simulation",
    no_args_is_help=True,
)


class OutputFormat(str, Enum):
    """Output format."""
    TEXT = "text"
    JSON = "json"


class AncestralMethod(str, Enum):
    """Kind of ancestral reconstruction."""
    JOINT = "joint"
    MARGINAL = "marginal"


ALIGNMENT_OPTION = typer.Option(
    ...,
    "--alignment", "-s",
    help="DNA alignment file (PHYLIP or FASTA)",
    exists=True,
    file_okay=True,
    dir_okay=False,
)
TREE_OPTION = typer.Option(
    ...,
    "--tree", "-t",
    help="Tree file (Newick format with branch lengths)",
    exists=True,
    file_okay=True,
    dir_okay=False,
)
MODEL_OPTION = typer.Option(
    "HKY",
    "--model", "-m",
    help="DNA substitution model (JC, K80, F81, HKY, GTR)",
)
GAMMA_OPTION = typer.Option(
    0,
    "--gamma",
    help="Number of discrete Gamma rate categories (0 for none)",
    min=0,
)
PARAM_OPTION = typer.Option(
    None,
    "--param", "-p",
    help="Parameter value as name=value (repeatable)",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose", "-v",
    help="Show debug logging",
)


@app.command()
def likelihood(
    alignment: Path = ALIGNMENT_OPTION,
    tree: Path = TREE_OPTION,
    model: str = MODEL_OPTION,
    gamma: int = GAMMA_OPTION,
    param: Optional[List[str]] = PARAM_OPTION,
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    sites: bool = typer.Option(
        False,
        "--sites",
        help="Also report the log-likelihood of every site",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Compute the log-likelihood of an alignment on a fixed tree.

    Example:
        phylolik likelihood -s alignment.fasta -t tree.nwk -m GTR --gamma 4
        phylolik likelihood -s alignment.phy -t tree.nwk -m HKY -p k=2.5 --format json
    """
    from .commands.likelihood import run_likelihood

    run_likelihood(
        alignment=alignment,
        tree=tree,
        model=model,
        gamma=gamma,
        params=param,
        format=format.value,
        sites=sites,
        verbose=verbose,
    )


@app.command()
def ancestral(
    alignment: Path = ALIGNMENT_OPTION,
    tree: Path = TREE_OPTION,
    model: str = MODEL_OPTION,
    gamma: int = GAMMA_OPTION,
    param: Optional[List[str]] = PARAM_OPTION,
    method: AncestralMethod = typer.Option(
        AncestralMethod.JOINT,
        "--method",
        help="Joint (single best assignment) or marginal (posterior per node)",
    ),
    algorithm: JointMethod = typer.Option(
        JointMethod.AUTO,
        "--algorithm",
        help="Joint algorithm: dynamic programming, branch-and-bound, or auto",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Reconstruct ancestral states at the internal nodes of the tree.

    Joint reconstruction writes a FASTA alignment including internal
    nodes; marginal reconstruction writes a TSV of state probabilities.

    Example:
        phylolik ancestral -s alignment.fasta -t tree.nwk -m JC
        phylolik ancestral -s alignment.fasta -t tree.nwk --gamma 4 --algorithm bb
        phylolik ancestral -s alignment.fasta -t tree.nwk --method marginal -o probs.tsv
    """
    from .commands.ancestral import run_ancestral

    run_ancestral(
        alignment=alignment,
        tree=tree,
        model=model,
        gamma=gamma,
        params=param,
        method=method.value,
        algorithm=algorithm.value,
        output=output,
        verbose=verbose,
    )


@app.command()
def simulate(
    tree: Path = TREE_OPTION,
    model: str = MODEL_OPTION,
    gamma: int = GAMMA_OPTION,
    param: Optional[List[str]] = PARAM_OPTION,
    length: int = typer.Option(
        ...,
        "--length", "-l",
        help="Number of sites to simulate",
        min=1,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducibility",
    ),
    internal: bool = typer.Option(
        False,
        "--internal",
        help="Include internal node states in the output",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output FASTA file (default: stdout)",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Simulate a DNA alignment on a tree.

    Example:
        phylolik simulate -t tree.nwk -m HKY -p k=4 -l 1000 --seed 42 -o sim.fasta
    """
    from .commands.simulate import run_simulate

    run_simulate(
        tree=tree,
        model=model,
        gamma=gamma,
        params=param,
        length=length,
        seed=seed,
        internal=internal,
        output=output,
        verbose=verbose,
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
