"""Bundled demo data."""

from depot_ops.data.demo_fleet import build_demo_store

__all__ = ["build_demo_store"]
