"""
Unit tests for CLI commands.
"""

import json

import pytest

from phylolik.cli.main import app


class TestCLIHelp:
    """Test help messages and basic CLI functionality."""

    def test_main_help(self, cli_runner):
        result = cli_runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "likelihood" in result.stdout
        assert "ancestral" in result.stdout
        assert "simulate" in result.stdout

    def test_likelihood_help(self, cli_runner):
        result = cli_runner.invoke(app, ["likelihood", "--help"])
        assert result.exit_code == 0
        assert "--alignment" in result.stdout or "-s" in result.stdout
        assert "--gamma" in result.stdout


class TestCLILikelihood:
    """Test 'likelihood' command functionality."""

    def test_text_output(self, cli_runner, primate_files):
        result = cli_runner.invoke(app, [
            "likelihood",
            "-s", str(primate_files["alignment"]),
            "-t", str(primate_files["tree"]),
            "-m", "HKY",
            "-p", "k=2.5",
        ])

        assert result.exit_code == 0, result.output
        assert "Log-likelihood:" in result.stdout
        assert "HKY" in result.stdout

    def test_json_output(self, cli_runner, primate_files):
        result = cli_runner.invoke(app, [
            "likelihood",
            "-s", str(primate_files["alignment"]),
            "-t", str(primate_files["tree"]),
            "-m", "jc",
            "--gamma", "4",
            "-p", "g=0.5",
            "--format", "json",
            "--sites",
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["model"] == "JC"
        assert data["gamma_categories"] == 4
        assert data["parameters"]["g"] == pytest.approx(0.5)
        assert data["log_likelihood"] < 0
        assert len(data["site_log_likelihoods"]) == 16
        assert sum(data["site_log_likelihoods"]) == pytest.approx(data["log_likelihood"])

    def test_unknown_model(self, cli_runner, primate_files):
        result = cli_runner.invoke(app, [
            "likelihood",
            "-s", str(primate_files["alignment"]),
            "-t", str(primate_files["tree"]),
            "-m", "WAG",
        ])

        assert result.exit_code == 1
        assert "Unknown model" in result.output

    @pytest.mark.parametrize("assignment", ["k", "k=fast", "omega=2"])
    def test_bad_parameter(self, cli_runner, primate_files, assignment):
        result = cli_runner.invoke(app, [
            "likelihood",
            "-s", str(primate_files["alignment"]),
            "-t", str(primate_files["tree"]),
            "-p", assignment,
        ])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_phylip_input(self, cli_runner, tmp_path, primate_alignment, primate_files):
        phylip = tmp_path / "primates.phy"
        primate_alignment.to_phylip(phylip)

        fasta = cli_runner.invoke(app, [
            "likelihood", "-s", str(primate_files["alignment"]), "-t", str(primate_files["tree"]),
            "--format", "json",
        ])
        phy = cli_runner.invoke(app, [
            "likelihood", "-s", str(phylip), "-t", str(primate_files["tree"]),
            "--format", "json",
        ])

        assert phy.exit_code == 0, phy.output
        assert json.loads(phy.stdout)["log_likelihood"] == pytest.approx(
            json.loads(fasta.stdout)["log_likelihood"]
        )


class TestCLIAncestral:
    """Test 'ancestral' command functionality."""

    @pytest.mark.parametrize("algorithm", ["auto", "dp", "bb"])
    def test_joint_fasta(self, cli_runner, primate_files, algorithm):
        result = cli_runner.invoke(app, [
            "ancestral",
            "-s", str(primate_files["alignment"]),
            "-t", str(primate_files["tree"]),
            "-m", "K80",
            "-p", "k=2",
            "--algorithm", algorithm,
        ])

        assert result.exit_code == 0, result.output
        for name in ("Human", "Gibbon", "A", "B", "C"):
            assert f">{name}\n" in result.stdout

    def test_marginal_table(self, cli_runner, primate_files, tmp_path):
        out = tmp_path / "marginal.tsv"
        result = cli_runner.invoke(app, [
            "ancestral",
            "-s", str(primate_files["alignment"]),
            "-t", str(primate_files["tree"]),
            "--method", "marginal",
            "-o", str(out),
        ])

        assert result.exit_code == 0, result.output
        lines = out.read_text().splitlines()
        assert lines[0] == "site\tnode\tT\tC\tA\tG"
        # Three internal nodes for each of the 16 sites
        assert len(lines) == 1 + 16 * 3
        site, node, *probs = lines[1].split("\t")
        assert site == "1"
        assert sum(float(p) for p in probs) == pytest.approx(1.0, abs=1e-5)


class TestCLISimulate:
    """Test 'simulate' command functionality."""

    def test_simulate_stdout(self, cli_runner, primate_files):
        result = cli_runner.invoke(app, [
            "simulate",
            "-t", str(primate_files["tree"]),
            "-m", "HKY",
            "-p", "k=4",
            "-l", "25",
            "--seed", "42",
        ])

        assert result.exit_code == 0, result.output
        lines = result.stdout.splitlines()
        human = lines[lines.index(">Human") + 1]
        assert len(human) == 25
        assert set(human) <= set("TCAG")
        assert sum(line.startswith(">") for line in lines) == 5

    def test_simulate_seed_reproducible(self, cli_runner, primate_files):
        args = ["simulate", "-t", str(primate_files["tree"]), "-l", "40", "--seed", "7"]
        assert cli_runner.invoke(app, args).stdout == cli_runner.invoke(app, args).stdout

    def test_simulate_internal_to_file(self, cli_runner, primate_files, tmp_path):
        out = tmp_path / "sim.fasta"
        result = cli_runner.invoke(app, [
            "simulate",
            "-t", str(primate_files["tree"]),
            "-l", "10",
            "--seed", "1",
            "--internal",
            "-o", str(out),
        ])

        assert result.exit_code == 0, result.output
        text = out.read_text()
        assert ">C\n" in text
        assert text.count(">") == 8

    def test_simulate_length_required(self, cli_runner, primate_files):
        result = cli_runner.invoke(app, ["simulate", "-t", str(primate_files["tree"])])
        assert result.exit_code != 0
