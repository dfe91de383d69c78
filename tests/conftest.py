"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path
from typer.testing import CliRunner

from phylolik.io.sequences import Alignment, Ambiguous
from phylolik.io.trees import Tree
from phylolik.models.model import Model
from phylolik.models.rates import RateCategory
from phylolik.parameters import Parameter, Parameters

PRIMATE_NEWICK = (
    "(((Human: 0.057987, Chimpanzee: 0.074612)A: 0.035490, "
    "Gorilla: 0.074352)B: 0.131394, Orangutan: 0.350156, Gibbon: 0.544601)C;"
)

# GTR rates and frequencies (T, C, A, G) fitted to the primate data set
GTR_RATES = [
    [0.0, 1.370596, 0.039081, 0.000004],
    [0.931256, 0.0, 0.072745, 0.004875],
    [0.028434, 0.077896, 0.0, 0.439244],
    [0.000011, 0.017541, 1.475874, 0.0],
]
GTR_FREQUENCIES = [0.23500, 0.34587, 0.32300, 0.09613]
GAMMA_SHAPE = 0.19249

PRIMATE_SEQUENCES = {
    "Human":      "TCAGTTCAGAACTGAC",
    "Chimpanzee": "TCAGTTCAGAATTGAC",
    "Gorilla":    "TCAGCTCAGAGCTGAT",
    "Orangutan":  "TCGGCTAAGAGCTAAT",
    "Gibbon":     "CCGGCTAAGTGCCAAT",
}


@pytest.fixture
def primate_tree():
    """Five-taxon primate tree with named internal nodes A, B and C."""
    return Tree.from_newick(PRIMATE_NEWICK)


@pytest.fixture
def primate_alignment():
    """Small DNA alignment for the primate tree."""
    return Alignment.from_sequences(PRIMATE_SEQUENCES, Ambiguous.iupac_dna())


@pytest.fixture
def gtr_category():
    """Fixed-rate GTR category with explicit frequencies."""
    return RateCategory(GTR_RATES, GTR_FREQUENCIES, "TCAG", name="GTR")


@pytest.fixture
def gtr_model(gtr_category):
    return Model(gtr_category)


@pytest.fixture
def gtr_gamma_model(gtr_category):
    """GTR with four discrete Gamma categories, shape parameter 'g'."""
    return Model.gamma_rates(gtr_category, "g", 4)


@pytest.fixture
def gamma_parameters():
    return Parameters([Parameter.fixed("g", GAMMA_SHAPE)])


@pytest.fixture
def small_tree():
    """Three-taxon tree with a named internal node."""
    return Tree.from_newick("((A:0.1,B:0.2)AB:0.05,C:0.3)root;")


@pytest.fixture
def primate_files(tmp_path, primate_alignment):
    """Primate alignment (FASTA) and tree (Newick) written to disk."""
    alignment_file = tmp_path / "primates.fasta"
    primate_alignment.to_fasta(alignment_file)
    tree_file = tmp_path / "primates.nwk"
    tree_file.write_text(PRIMATE_NEWICK + "\n")
    return {"alignment": alignment_file, "tree": tree_file}


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


CATERPILLAR_LEAVES = 400


@pytest.fixture
def caterpillar_tree():
    """Ladder tree with 400 leaves L1..L400 hanging off internal nodes N1 (root)..N399."""
    length = 0.01
    branches = []
    for i in range(1, CATERPILLAR_LEAVES - 1):
        branches.append((f"N{i}", f"L{i}", length))
        branches.append((f"N{i}", f"N{i + 1}", length))
    last = f"N{CATERPILLAR_LEAVES - 1}"
    branches.append((last, f"L{CATERPILLAR_LEAVES - 1}", length))
    branches.append((last, f"L{CATERPILLAR_LEAVES}", length))
    return Tree.from_branches(branches)


@pytest.fixture
def caterpillar_alignment():
    """
    Two sites on the caterpillar whose leaf states cycle through TCAG.

    Neighbouring leaves disagree on short branches, which puts each site's
    likelihood far below the smallest positive double.
    """
    return Alignment.from_sequences({
        f"L{i}": "TCAG"[i % 4] + "TCAG"[(i // 2) % 4]
        for i in range(1, CATERPILLAR_LEAVES + 1)
    })
