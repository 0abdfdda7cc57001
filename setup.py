"""Setuptools build hooks for tensor-interp."""

from __future__ import annotations

from setuptools import setup

# Project metadata lives in pyproject.toml; the package is pure Python plus
# the bundled grammar file, so the default wheel command applies.
setup()
