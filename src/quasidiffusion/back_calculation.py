"""Reconstruction of face currents from a converged flux solution.

``current = d + C x`` where row ``k`` of ``C`` holds the first-moment
relation of the face owning current unknown ``k``. Each face is taken from
one adjacent cell: south and east faces from the cell to their north/west,
the north boundary row and the axis column from their only cell.
"""

import logging

from .assembly import FACE_ROLES, CurrentRelations, TripletBuilder

log = logging.getLogger(__name__)


class BackCalculation:
    def __init__(self, mesh, materials, steady_state=False):
        assert materials.shape == mesh.shape, f"materials shape {materials.shape} != mesh shape {mesh.shape}"
        self.mesh = mesh
        self.materials = materials
        self.steady_state = steady_state
        self.relations = CurrentRelations(mesh, materials, steady_state)

    def assemble(self, state, dt=None):
        """Re-populate ``state.C`` and ``state.d`` from the current Eddington field."""
        layout = state.layout
        assert (layout.n_z, layout.n_r) == self.mesh.shape, f"{layout} does not match mesh {self.mesh.shape}"
        if not self.steady_state and (dt is None or dt <= 0):
            raise ValueError(f"Transient back-calculation needs a positive time step, got dt={dt}")

        builder = TripletBuilder(state.nnz_hint.get("C", 4 * layout.n_current_unknowns))
        state.d[:] = 0.0
        for group in range(layout.n_groups):
            self.form_back_calc_system(builder, state, group, dt)

        state.C = builder.to_csr((layout.n_current_unknowns, layout.n_unknowns))
        state.nnz_hint["C"] = builder.idx
        return state.C, state.d

    def form_back_calc_system(self, builder, state, group, dt=None):
        layout = state.layout
        edd = state.eddington[group]
        for iR in range(layout.n_r):
            for iZ in range(layout.n_z):
                faces = ["south", "east"]
                if iZ == 0:
                    faces.append("north")
                if iR == 0:
                    faces.append("west")
                for face in faces:
                    self._calc_current(builder, state, face, iR, iZ, group, edd, dt)

    def _calc_current(self, builder, state, face, iR, iZ, group, edd, dt):
        idx = state.layout.indices(iR, iZ, group)
        row = idx[FACE_ROLES[face][1]]
        terms, w = self.relations.relation(face, iR, iZ, group, edd, dt)
        for role, value in terms:
            builder.add(row, idx[role], value)
        state.d[row] = w * state.curr_past[row]

    def back_calculate(self, state, x=None):
        """Return ``d + C x`` without touching the past-current vector."""
        if state.C is None:
            raise RuntimeError("Back-calculation system has not been assembled")
        x = state.x if x is None else x
        return state.d + state.C @ x
