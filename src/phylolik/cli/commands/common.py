"""Loading and model setup shared by the CLI commands."""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer

from phylolik.exceptions import ParameterException, PhylolikError
from phylolik.io.sequences import Alignment, Ambiguous
from phylolik.io.trees import Tree
from phylolik.models.dna import DNA_MODELS
from phylolik.models.model import Model
from phylolik.parameters import Parameters


def configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn library errors into a message on stderr and exit code 1."""
    try:
        yield
    except PhylolikError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def load_alignment(path: Path) -> Alignment:
    """Read a DNA alignment, trying PHYLIP first and then FASTA."""
    ambiguous = Ambiguous.iupac_dna()
    try:
        return Alignment.from_phylip(path, ambiguous)
    except (ValueError, IndexError):
        return Alignment.from_fasta(path, ambiguous)


def load_tree(path: Path) -> Tree:
    return Tree.from_file(path)


def build_model(name: str, gamma: int, assignments: Optional[list[str]]) -> tuple[Model, Parameters]:
    """
    Build a named DNA model and apply ``name=value`` parameter assignments.

    Raises
    ------
    ParameterException
        For an unknown model, a malformed assignment or an unknown parameter
    """
    factory = DNA_MODELS.get(name.upper())
    if factory is None:
        raise ParameterException(
            f"Unknown model '{name}'. Valid models: {', '.join(DNA_MODELS)}"
        )
    model, parameters = factory(gamma_categories=gamma)
    for assignment in assignments or []:
        key, sep, value = assignment.partition("=")
        if not sep:
            raise ParameterException(f"Expected name=value, got '{assignment}'")
        try:
            number = float(value)
        except ValueError:
            raise ParameterException(f"Value of '{key}' is not a number: '{value}'") from None
        parameters.set_value(key.strip(), number)
    return model, parameters
