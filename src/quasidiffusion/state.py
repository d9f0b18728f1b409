"""Solver state owned by the multigroup coupling layer."""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy.sparse import csr_matrix

from .boundary import BoundaryData
from .eddington import EddingtonField
from .layout import UnknownLayout
from .sources import GreyGroupSource


@dataclass
class SolverState:
    """Everything one assemble/solve/back-calculate cycle reads or writes.

    ``x_past`` and ``curr_past`` hold the last accepted time step and are only
    overwritten by ``accept``.
    """

    layout: UnknownLayout
    eddington: List[EddingtonField]
    boundary_data: List[BoundaryData]
    x: np.ndarray
    x_past: np.ndarray
    current: np.ndarray
    curr_past: np.ndarray
    b: np.ndarray
    d: np.ndarray
    A: Optional[csr_matrix] = None
    C: Optional[csr_matrix] = None
    grey_source: Optional[GreyGroupSource] = None
    nnz_hint: dict = field(default_factory=dict)

    @classmethod
    def allocate(cls, layout: UnknownLayout):
        n, n_curr = layout.n_unknowns, layout.n_current_unknowns
        return cls(
            layout=layout,
            eddington=[EddingtonField.diffusion_limit(layout.n_z, layout.n_r) for _ in range(layout.n_groups)],
            boundary_data=[BoundaryData.default(layout.n_z, layout.n_r) for _ in range(layout.n_groups)],
            x=np.zeros(n),
            x_past=np.zeros(n),
            current=np.zeros(n_curr),
            curr_past=np.zeros(n_curr),
            b=np.zeros(n),
            d=np.zeros(n_curr),
        )

    def accept(self):
        """Promote the latest solution to the past-solution vectors."""
        self.x_past[:] = self.x
        self.curr_past[:] = self.current
