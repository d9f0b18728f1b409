"""Tests for the multigroup coupling layer."""

import numpy as np
import pytest

from meshing import RZMesh
from quasidiffusion import (
    GroupConstants,
    GroupFields,
    MultiGroupQD,
    QDParameters,
    collapse_grey_group_source,
)
from quasidiffusion.exceptions import ConfigurationError

REFLECTING = {"north": "reflecting", "south": "reflecting", "east": "reflecting"}


class TestScatteringSum:
    """Infinite-medium two-group problems with analytic solutions."""

    def _solve(self, mesh, q0, sig_s_10):
        m = GroupConstants.uniform(
            *mesh.shape,
            sig_t=[1.0, 2.0],
            sig_s=[[0.0, 0.0], [sig_s_10, 0.5]],
            q=[q0, 3.0],
        )
        qd = MultiGroupQD(mesh, m, linear_solver="direct", **REFLECTING)
        return qd.solve_steady_state()

    def test_group_one_ignores_group_zero(self, small_mesh):
        base = self._solve(small_mesh, q0=1.0, sig_s_10=0.4)
        changed = self._solve(small_mesh, q0=5.0, sig_s_10=0.4)
        assert np.allclose(base[1].flux, changed[1].flux, rtol=1e-12)
        assert np.allclose(base[1].flux, 3.0 / (2.0 - 0.5))

    def test_group_zero_receives_group_one(self, small_mesh):
        fields = self._solve(small_mesh, q0=1.0, sig_s_10=0.4)
        phi1 = 3.0 / 1.5
        assert np.allclose(fields[0].flux, (1.0 + 0.4 * phi1) / 1.0)

        without = self._solve(small_mesh, q0=1.0, sig_s_10=0.0)
        assert np.all(fields[0].flux > without[0].flux)

    def test_fission_couples_all_groups(self, small_mesh):
        """Fission in group 1 feeds group 0 through chi_p."""
        m = GroupConstants.uniform(
            *small_mesh.shape,
            sig_t=[1.0, 1.0],
            sig_s=[[0.0, 0.5], [0.0, 0.0]],
            nu=[0.0, 2.0],
            sig_f=[0.0, 0.2],
            chi_p=[1.0, 0.0],
            q=[1.0, 0.0],
        )
        qd = MultiGroupQD(small_mesh, m, linear_solver="direct", **REFLECTING)
        fields = qd.solve_steady_state()
        # phi0 = 1 + 0.4 phi1, phi1 = 0.5 phi0
        phi0 = 1.0 / (1.0 - 0.2)
        assert np.allclose(fields[0].flux, phi0)
        assert np.allclose(fields[1].flux, 0.5 * phi0)


class TestTransient:
    """Time stepping."""

    def test_steady_state_is_preserved(self, small_mesh, one_group_params):
        m = GroupConstants.uniform(*small_mesh.shape, **one_group_params)
        qd = MultiGroupQD(small_mesh, m, steady_state=False, linear_solver="direct", **REFLECTING)
        qd.set_initial_condition([GroupFields.allocate(*small_mesh.shape, value=1.5)])

        fields = qd.solve_transient([0.1, 0.1, 0.2])

        assert np.allclose(fields[0].flux, 1.5)
        assert qd.metrics.time_steps == 3
        assert qd.time == pytest.approx(0.4)
        assert len(qd.time_series) == 3

    def test_relaxes_towards_steady_state(self, one_group_params):
        mesh = RZMesh.uniform(1.0, 1.0, 2, 2, dt=0.05, n_steps=40)
        m = GroupConstants.uniform(*mesh.shape, **one_group_params)
        qd = MultiGroupQD(mesh, m, steady_state=False, **REFLECTING)

        qd.step(dt=0.05)
        first = qd.fields[0].flux.copy()
        assert np.all(first > 0.0) and np.all(first < 1.5)
        assert np.allclose(qd.previous_fields[0].flux, 0.0)

        qd.solve_transient()
        assert np.allclose(qd.fields[0].flux, 1.5, rtol=1e-2)
        assert np.all(qd.fields[0].flux > first)

    def test_time_dependent_balance(self, small_mesh, two_group_params):
        m = GroupConstants.uniform(*small_mesh.shape, **two_group_params)
        qd = MultiGroupQD(small_mesh, m, steady_state=False, linear_solver="direct")
        qd.solve_transient([0.01, 0.02])
        assert qd.metrics.max_balance_residual < 1e-9

    def test_step_requires_dt(self, small_mesh, one_group_params):
        m = GroupConstants.uniform(*small_mesh.shape, **one_group_params)
        qd = MultiGroupQD(small_mesh, m, steady_state=False)
        with pytest.raises(ValueError):
            qd.step()
        with pytest.raises(ValueError):
            qd.solve_steady_state()

    def test_initial_condition_round_trip(self, small_mesh, one_group_params, rng):
        m = GroupConstants.uniform(*small_mesh.shape, **one_group_params)
        qd = MultiGroupQD(small_mesh, m, steady_state=False)
        f = GroupFields.allocate(*small_mesh.shape)
        f.flux[:] = rng.random(f.flux.shape)
        f.current_axial[:] = rng.random(f.current_axial.shape)
        qd.set_initial_condition([f])

        qd.state.x[:] = qd.state.x_past
        qd.state.current[:] = qd.state.curr_past
        out = qd.extract_fields()
        assert np.array_equal(out[0].flux, f.flux)
        assert np.array_equal(out[0].current_axial, f.current_axial)


class TestGreyGroupSource:
    """Collapsed source reproduces the multigroup solution it came from."""

    def test_equivalence(self, small_mesh, two_group_params):
        params = dict(two_group_params)
        params["sig_s"] = [[0.3, 0.2], [0.1, 0.9]]  # include upscatter
        m = GroupConstants.uniform(*small_mesh.shape, **params)
        bcs = {"north": "flux", "south": "reflecting", "east": "flux"}

        reference = MultiGroupQD(small_mesh, m, linear_solver="direct", **bcs)
        ref_fields = reference.solve_steady_state()

        grey = MultiGroupQD(small_mesh, m, linear_solver="direct", source_mode="grey", **bcs)
        grey.set_grey_source(collapse_grey_group_source(ref_fields, m, keff=1.0))
        fields = grey.solve_steady_state()

        for g in range(2):
            assert np.allclose(fields[g].flux, ref_fields[g].flux, rtol=1e-9)
        assert grey.metrics.max_balance_residual < 1e-10

    def test_keff_scales_fission(self, small_mesh, two_group_params):
        m = GroupConstants.uniform(*small_mesh.shape, **two_group_params)
        ref = MultiGroupQD(small_mesh, m, linear_solver="direct", **REFLECTING).solve_steady_state()
        source = collapse_grey_group_source(ref, m, keff=1.0)

        a = source.stage_rhs(small_mesh, m, 0, steady_state=True)
        source.keff = 2.0
        b = source.stage_rhs(small_mesh, m, 0, steady_state=True)
        fission = small_mesh.volumes * source.fission_coeff * source.grey_flux
        assert np.allclose(a - b, 0.5 * fission)

        # Transient sources ignore keff
        c = source.stage_rhs(small_mesh, m, 0, steady_state=False)
        assert np.allclose(a, c)


class TestOutputs:
    """Read access used by neighbouring modules, and result containers."""

    @pytest.fixture
    def solved(self, small_mesh, two_group_params):
        m = GroupConstants.uniform(*small_mesh.shape, **two_group_params)
        qd = MultiGroupQD(small_mesh, m, params=QDParameters(linear_solver="direct"))
        qd.solve()
        return qd

    def test_scalar_flux(self, solved):
        total = solved.fields[0].flux + solved.fields[1].flux
        assert solved.scalar_flux(2, 1) == pytest.approx(total[2, 1])
        assert np.allclose(solved.scalar_flux_field(), total)

    def test_metrics(self, solved):
        assert solved.metrics.solves == 1
        assert solved.metrics.direct_solves == 1
        assert solved.metrics.final_relative_residual < 1e-12
        assert solved.metrics.wall_time_seconds >= 0.0
        assert set(solved.metrics.to_mlflow()) >= {"solves", "fallbacks", "max_balance_residual"}

    def test_fields_dataframe(self, solved, small_mesh):
        df = solved.fields_dataframe()
        assert len(df) == 2 * small_mesh.n_r * small_mesh.n_z
        assert {"group", "r", "z", "flux", "current_east"} <= set(df.columns)

    def test_time_series(self, solved):
        assert solved.time_series.method == ["direct"]
        batch = solved.time_series.to_mlflow_batch()
        assert len(batch) == 2
        assert solved.time_series.to_dataframe().shape[0] == 1

    def test_save(self, solved, tmp_path):
        pytest.importorskip("tables")
        import pandas as pd

        path = tmp_path / "run.h5"
        solved.save(path)
        with pd.HDFStore(path, mode="r") as store:
            assert set(store.keys()) == {"/params", "/metrics", "/time_series", "/fields"}

    def test_grey_mode_rejects_wrong_shape(self, small_mesh, two_group_params, solved):
        m = GroupConstants.uniform(*small_mesh.shape, **two_group_params)
        qd = MultiGroupQD(small_mesh, m, source_mode="grey")
        source = collapse_grey_group_source(solved.fields, m)
        source.grey_flux = source.grey_flux[:2]
        with pytest.raises(AssertionError):
            qd.set_grey_source(source)
        with pytest.raises(ConfigurationError):
            qd.build_linear_system()
