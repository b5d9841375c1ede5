"""Dependency-ordered release automation for monorepo packages."""

__version__ = "0.1.0"
