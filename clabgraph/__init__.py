"""Topology graph compiler for containerlab labs."""

__version__ = "0.1.0"
