"""Command implementations for the phylolik CLI."""
