"""Axisymmetric mesh geometry."""

from .rz_mesh import CellGeometry, RZMesh

__all__ = ["CellGeometry", "RZMesh"]
