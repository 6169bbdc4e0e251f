"""Autoflow - credential-gated compiler for workflow engine documents."""

__version__ = "0.1.0"
