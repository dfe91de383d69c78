"""Command line interface for phylolik."""
