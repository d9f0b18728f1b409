"""
Assembly of the multigroup quasidiffusion (QD) linear system.

For every group and cell (iR outer, iZ inner) the assembler asserts:

1. the zeroth-moment balance in the cell,
2. a south-face equation (current continuity, or the south boundary closure),
3. an east-face equation (current continuity, or the east boundary closure),
4. a north-face equation if the cell touches the north boundary,
5. a west-face equation if the cell touches the axis.

so each shared face is asserted exactly once. Face currents are eliminated
through the first-moment relation

    J_face = sum_k a_k phi_k + w J_face_past

whose coefficients ``a_k`` come from ``CurrentRelations``. The same relations
feed the back-calculation system (``back_calculation.py``).

Entries are collected as COO triplets and converted to CSR; duplicate
(row, col) pairs are summed.
"""

import logging

import numpy as np
from scipy.sparse import csr_matrix

from .boundary import BoundaryMode
from .eddington import integrating_factor
from .exceptions import ConfigurationError
from .layout import Role

log = logging.getLogger(__name__)

# Face name -> (flux role, current role)
FACE_ROLES = {
    "west": (Role.WF, Role.WC),
    "east": (Role.EF, Role.EC),
    "north": (Role.NF, Role.NC),
    "south": (Role.SF, Role.SC),
}


class TripletBuilder:
    """Growable COO triplet buffer."""

    def __init__(self, capacity=1024):
        capacity = max(int(capacity), 16)
        self.row = np.zeros(capacity, dtype=np.int64)
        self.col = np.zeros(capacity, dtype=np.int64)
        self.data = np.zeros(capacity, dtype=np.float64)
        self.idx = 0

    def _grow(self):
        new = 2 * self.row.size
        self.row = np.resize(self.row, new)
        self.col = np.resize(self.col, new)
        self.data = np.resize(self.data, new)

    def add(self, row, col, value):
        if self.idx == self.row.size:
            self._grow()
        self.row[self.idx] = row
        self.col[self.idx] = col
        self.data[self.idx] = value
        self.idx += 1

    def extend(self, row, col, data):
        n = len(row)
        while self.idx + n > self.row.size:
            self._grow()
        self.row[self.idx : self.idx + n] = row
        self.col[self.idx : self.idx + n] = col
        self.data[self.idx : self.idx + n] = data
        self.idx += n

    def to_csr(self, shape):
        n = self.idx
        return csr_matrix((self.data[:n], (self.row[:n], self.col[:n])), shape=shape)


class CurrentRelations:
    """First-moment relations expressing face currents through fluxes.

    Each method returns ``(terms, w)`` where ``terms`` is a list of
    ``(Role, coefficient)`` pairs on the cell's flux unknowns and ``w``
    multiplies the face's past current.

    Transient: scale ``c = 1/(1/(v dt) + sig_t)`` with the cell cross section,
    ``w = c/(v dt)``. Steady state: ``c = 1/sig_t_face`` with the face-averaged
    cross section, ``w = 0``.
    """

    def __init__(self, mesh, materials, steady_state):
        self.mesh = mesh
        self.materials = materials
        self.steady_state = steady_state
        self.sig_t_radial = materials.radial_face_sig_t(mesh)
        self.sig_t_axial = materials.axial_face_sig_t(mesh)

    def _scale(self, iR, iZ, group, face_sig_t, dt):
        if self.steady_state:
            return 1.0 / face_sig_t, 0.0
        v = self.materials.velocity[iZ, iR, group]
        rate = 1.0 / (v * dt)
        c = 1.0 / (rate + self.materials.sig_t[iZ, iR, group])
        return c, c * rate

    def south(self, iR, iZ, group, edd, dt):
        g = self.mesh.cell_geometry(iR, iZ)
        delta_r = g.r_up - g.r_down
        delta_z = g.z_up - g.z_avg
        c, w = self._scale(iR, iZ, group, self.sig_t_axial[iZ + 1, iR, group], dt)
        terms = [
            (Role.SF, -c * edd.ezz_axial[iZ + 1, iR] / delta_z),
            (Role.CF, c * edd.ezz[iZ, iR] / delta_z),
            (Role.WF, c * g.r_down * edd.erz_radial[iZ, iR] / (g.r_avg * delta_r)),
            (Role.EF, -c * g.r_up * edd.erz_radial[iZ, iR + 1] / (g.r_avg * delta_r)),
        ]
        return terms, w

    def north(self, iR, iZ, group, edd, dt):
        g = self.mesh.cell_geometry(iR, iZ)
        delta_r = g.r_up - g.r_down
        delta_z = g.z_avg - g.z_down
        c, w = self._scale(iR, iZ, group, self.sig_t_axial[iZ, iR, group], dt)
        terms = [
            (Role.NF, c * edd.ezz_axial[iZ, iR] / delta_z),
            (Role.CF, -c * edd.ezz[iZ, iR] / delta_z),
            (Role.WF, c * g.r_down * edd.erz_radial[iZ, iR] / (g.r_avg * delta_r)),
            (Role.EF, -c * g.r_up * edd.erz_radial[iZ, iR + 1] / (g.r_avg * delta_r)),
        ]
        return terms, w

    def west(self, iR, iZ, group, edd, dt):
        g = self.mesh.cell_geometry(iR, iZ)
        delta_r = g.r_avg - g.r_down
        delta_z = g.z_up - g.z_down
        h_cent = integrating_factor(edd, iR, iZ, g.r_down, g.r_up, g.r_avg)
        h_down = integrating_factor(edd, iR, iZ, g.r_down, g.r_up, g.r_down)
        c, w = self._scale(iR, iZ, group, self.sig_t_radial[iZ, iR, group], dt)
        terms = [
            (Role.SF, -c * edd.erz_axial[iZ + 1, iR] / delta_z),
            (Role.NF, c * edd.erz_axial[iZ, iR] / delta_z),
            (Role.CF, -c * h_cent * edd.err[iZ, iR] / (h_down * delta_r)),
            (Role.WF, c * edd.err_radial[iZ, iR] / delta_r),
        ]
        return terms, w

    def east(self, iR, iZ, group, edd, dt):
        g = self.mesh.cell_geometry(iR, iZ)
        delta_r = g.r_up - g.r_avg
        delta_z = g.z_up - g.z_down
        h_cent = integrating_factor(edd, iR, iZ, g.r_down, g.r_up, g.r_avg)
        h_up = integrating_factor(edd, iR, iZ, g.r_down, g.r_up, g.r_up)
        c, w = self._scale(iR, iZ, group, self.sig_t_radial[iZ, iR + 1, group], dt)
        terms = [
            (Role.SF, -c * edd.erz_axial[iZ + 1, iR] / delta_z),
            (Role.NF, c * edd.erz_axial[iZ, iR] / delta_z),
            (Role.CF, c * h_cent * edd.err[iZ, iR] / (h_up * delta_r)),
            (Role.EF, -c * edd.err_radial[iZ, iR + 1] / delta_r),
        ]
        return terms, w

    def relation(self, face, iR, iZ, group, edd, dt):
        return getattr(self, face)(iR, iZ, group, edd, dt)


class QDAssembler:
    """Builds A and b of the multigroup QD system.

    Parameters
    ----------
    mesh : RZMesh
        Geometry provider.
    materials : GroupConstants
        Material provider.
    boundary_conditions : BoundaryConditions
        Resolved boundary mode per face family.
    steady_state : bool
        Select steady-state scaling (no time derivative).
    source_mode : str
        ``"multigroup"`` for the explicit scattering/fission sum, ``"grey"``
        for the collapsed grey-group source.
    """

    def __init__(self, mesh, materials, boundary_conditions, steady_state=False, source_mode="multigroup"):
        if source_mode not in ("multigroup", "grey"):
            raise ConfigurationError(f"Unknown source mode '{source_mode}'")
        assert materials.shape == mesh.shape, f"materials shape {materials.shape} != mesh shape {mesh.shape}"

        self.mesh = mesh
        self.materials = materials
        self.bcs = boundary_conditions
        self.steady_state = steady_state
        self.source_mode = source_mode
        self.relations = CurrentRelations(mesh, materials, steady_state)

    def _check(self, state, dt):
        layout = state.layout
        assert (layout.n_z, layout.n_r) == self.mesh.shape, f"{layout} does not match mesh {self.mesh.shape}"
        assert layout.n_groups == self.materials.n_groups, "layout group count != material group count"
        assert len(state.eddington) == layout.n_groups and len(state.boundary_data) == layout.n_groups
        for edd, bcd in zip(state.eddington, state.boundary_data):
            edd.check_shape(layout.n_z, layout.n_r)
            bcd.check_shape(layout.n_z, layout.n_r)
        if not self.steady_state and (dt is None or dt <= 0):
            raise ValueError(f"Transient assembly needs a positive time step, got dt={dt}")
        if self.source_mode == "grey":
            if state.grey_source is None:
                raise ConfigurationError("Grey-group source mode selected but no grey-group source was set")
            state.grey_source.check_shape(layout.n_z, layout.n_r, layout.n_groups)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def assemble(self, state, dt=None):
        """Re-populate ``state.A`` and ``state.b`` for every group."""
        self._check(state, dt)
        layout = state.layout
        n = layout.n_unknowns

        builder = TripletBuilder(state.nnz_hint.get("A", self._estimate_nnz(layout)))
        state.b[:] = 0.0
        for group in range(layout.n_groups):
            self.form_linear_system(builder, state, group, dt)

        state.A = builder.to_csr((n, n))
        state.nnz_hint["A"] = builder.idx
        log.debug(f"Assembled QD system: n={n}, nnz={state.A.nnz}")
        return state.A, state.b

    def form_linear_system(self, builder, state, group, dt=None):
        """Assert every equation of ``group`` into ``builder`` and ``state.b``."""
        layout = state.layout
        n_r, n_z = layout.n_r, layout.n_z
        i_eq = group * layout.n_group_unknowns

        staged = None
        if self.source_mode == "grey":
            staged = state.grey_source.stage_rhs(self.mesh, self.materials, group, self.steady_state)

        for iR in range(n_r):
            for iZ in range(n_z):
                self._zeroth_moment(builder, state, iR, iZ, i_eq, group, dt, staged)
                i_eq += 1

                if iZ == n_z - 1:
                    self._boundary(builder, state, "south", iR, iZ, i_eq, group, dt)
                else:
                    self._axial_interface(builder, state, iR, iZ, i_eq, group, dt)
                i_eq += 1

                if iR == n_r - 1:
                    self._boundary(builder, state, "east", iR, iZ, i_eq, group, dt)
                else:
                    self._radial_interface(builder, state, iR, iZ, i_eq, group, dt)
                i_eq += 1

                if iZ == 0:
                    self._boundary(builder, state, "north", iR, iZ, i_eq, group, dt)
                    i_eq += 1

                if iR == 0:
                    self._boundary(builder, state, "west", iR, iZ, i_eq, group, dt)
                    i_eq += 1

        assert i_eq == (group + 1) * layout.n_group_unknowns, "equation count does not match unknown count"

    # ------------------------------------------------------------------
    # Equations
    # ------------------------------------------------------------------

    def _current(self, builder, state, face, coeff, iR, iZ, i_eq, group, dt):
        """Add ``coeff * J_face`` of cell (iR, iZ) to row ``i_eq``."""
        idx = state.layout.indices(iR, iZ, group)
        terms, w = self.relations.relation(face, iR, iZ, group, state.eddington[group], dt)
        for role, value in terms:
            builder.add(i_eq, idx[role], coeff * value)
        if w != 0.0:
            state.b[i_eq] -= coeff * w * state.curr_past[idx[FACE_ROLES[face][1]]]

    def _zeroth_moment(self, builder, state, iR, iZ, i_eq, group, dt, staged):
        m = self.materials
        geo = self.mesh.cell_geometry(iR, iZ)
        idx = state.layout.indices(iR, iZ, group)
        vol = geo.volume

        if self.source_mode == "grey":
            for from_group in range(group + 1):
                col = state.layout.index(iR, iZ, Role.CF, from_group)
                builder.add(i_eq, col, -vol * m.sig_s[iZ, iR, from_group, group])
            state.b[i_eq] += staged[iZ, iR]
        else:
            chi = m.chi_p[iZ, iR, group]
            for from_group in range(state.layout.n_groups):
                col = state.layout.index(iR, iZ, Role.CF, from_group)
                coupling = m.sig_s[iZ, iR, from_group, group] + chi * m.nu[iZ, iR, from_group] * m.sig_f[iZ, iR, from_group]
                builder.add(i_eq, col, -vol * coupling)

        if self.steady_state:
            builder.add(i_eq, idx[Role.CF], vol * m.sig_t[iZ, iR, group])
            state.b[i_eq] += vol * m.q[iZ, iR, group]
        else:
            rate = 1.0 / (m.velocity[iZ, iR, group] * dt)
            builder.add(i_eq, idx[Role.CF], vol * (rate + m.sig_t[iZ, iR, group]))
            state.b[i_eq] += vol * (state.x_past[idx[Role.CF]] * rate + m.q[iZ, iR, group])

        # Net leakage, east/south outward-positive
        self._current(builder, state, "west", -geo.west_area, iR, iZ, i_eq, group, dt)
        self._current(builder, state, "east", geo.east_area, iR, iZ, i_eq, group, dt)
        self._current(builder, state, "north", -geo.north_area, iR, iZ, i_eq, group, dt)
        self._current(builder, state, "south", geo.south_area, iR, iZ, i_eq, group, dt)

    def _axial_interface(self, builder, state, iR, iZ, i_eq, group, dt):
        """Continuity of current between cell (iR, iZ) and the cell south of it."""
        self._current(builder, state, "north", 1.0, iR, iZ + 1, i_eq, group, dt)
        self._current(builder, state, "south", -1.0, iR, iZ, i_eq, group, dt)

    def _radial_interface(self, builder, state, iR, iZ, i_eq, group, dt):
        """Continuity of current between cell (iR, iZ) and the cell east of it."""
        self._current(builder, state, "east", 1.0, iR, iZ, i_eq, group, dt)
        self._current(builder, state, "west", -1.0, iR + 1, iZ, i_eq, group, dt)

    def _boundary(self, builder, state, face, iR, iZ, i_eq, group, dt):
        """Boundary closure on ``face`` of cell (iR, iZ)."""
        mode = self.bcs.mode(face)
        bcd = state.boundary_data[group]

        # The axis always takes the current relation
        if face == "west" or mode is BoundaryMode.REFLECTING:
            self._current(builder, state, face, 1.0, iR, iZ, i_eq, group, dt)
            return

        along = iR if face in ("north", "south") else iZ
        flux_col = state.layout.indices(iR, iZ, group)[FACE_ROLES[face][0]]

        if mode is BoundaryMode.GOLDIN:
            goldin = getattr(bcd, f"{face}_goldin")
            ratio = goldin.ratio[along]
            self._current(builder, state, face, 1.0, iR, iZ, i_eq, group, dt)
            builder.add(i_eq, flux_col, -ratio)
            state.b[i_eq] += goldin.inward_current[along] - ratio * goldin.inward_flux[along]
        else:
            builder.add(i_eq, flux_col, 1.0)
            state.b[i_eq] += getattr(bcd, f"{face}_flux")[along]

    @staticmethod
    def _estimate_nnz(layout):
        per_group = layout.n_cells * (layout.n_groups + 16) + (layout.n_cells + layout.n_r + layout.n_z) * 8
        return layout.n_groups * per_group
