"""Compiler services: parsing, materialization, aliasing and live state."""
