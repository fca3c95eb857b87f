"""Provision the GOCK3 language server and bridge it into an LSP session."""

__version__ = "0.1.0"
