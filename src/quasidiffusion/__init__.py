"""Multigroup quasidiffusion solver on 2D RZ meshes."""

from .boundary import BoundaryConditions, BoundaryData, BoundaryMode, GoldinData
from .datastructures import GroupFields, QDMetrics, QDParameters, TimeSeries
from .eddington import EddingtonField, integrating_factor
from .exceptions import ConfigurationError, SolverFailure
from .layout import Role, UnknownLayout
from .materials import GroupConstants
from .multigroup import MultiGroupQD
from .sources import FluxSourceCoupling, GreyGroupSource, collapse_grey_group_source

__all__ = [
    "BoundaryConditions",
    "BoundaryData",
    "BoundaryMode",
    "ConfigurationError",
    "EddingtonField",
    "FluxSourceCoupling",
    "GoldinData",
    "GreyGroupSource",
    "GroupConstants",
    "GroupFields",
    "MultiGroupQD",
    "QDMetrics",
    "QDParameters",
    "Role",
    "SolverFailure",
    "TimeSeries",
    "UnknownLayout",
    "collapse_grey_group_source",
    "integrating_factor",
]
