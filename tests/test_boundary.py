"""Tests for boundary-mode resolution and solver configuration."""

import numpy as np
import pytest

from quasidiffusion.boundary import BoundaryConditions, BoundaryData, BoundaryMode, parse_boundary_mode
from quasidiffusion.datastructures import QDParameters
from quasidiffusion.exceptions import ConfigurationError


class TestParseBoundaryMode:
    """Tests for string to mode mapping."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("flux", BoundaryMode.FLUX),
            ("Reflective", BoundaryMode.REFLECTING),
            ("REFLECTING", BoundaryMode.REFLECTING),
            (" goldin ", BoundaryMode.GOLDIN),
            (BoundaryMode.GOLDIN, BoundaryMode.GOLDIN),
        ],
    )
    def test_known_modes(self, value, expected):
        assert parse_boundary_mode(value) is expected

    def test_unknown_mode_raises(self):
        with pytest.raises(ConfigurationError):
            parse_boundary_mode("vacuum")


class TestBoundaryConditions:
    """Tests for one-time boundary resolution."""

    def test_defaults(self):
        bcs = BoundaryConditions.resolve()
        assert bcs.north is BoundaryMode.FLUX
        assert bcs.west is BoundaryMode.REFLECTING
        assert not bcs.uses_goldin

    def test_transport_coupled_promotes_flux_to_goldin(self):
        bcs = BoundaryConditions.resolve(north="flux", south="reflecting", east="flux", solve_type="TQD")
        assert bcs.north is BoundaryMode.GOLDIN
        assert bcs.east is BoundaryMode.GOLDIN
        assert bcs.south is BoundaryMode.REFLECTING

    def test_axis_is_always_current(self):
        assert BoundaryConditions.resolve(west="goldin").west is BoundaryMode.REFLECTING
        with pytest.raises(ConfigurationError):
            BoundaryConditions.resolve(west="flux")

    def test_unknown_solve_type(self):
        with pytest.raises(ConfigurationError):
            BoundaryConditions.resolve(solve_type="SN")

    def test_immutable(self):
        bcs = BoundaryConditions.resolve()
        with pytest.raises(AttributeError):
            bcs.north = BoundaryMode.GOLDIN


class TestBoundaryData:
    def test_default_values(self):
        data = BoundaryData.default(n_z=4, n_r=3, flux_value=2.0)
        data.check_shape(4, 3)
        assert np.all(data.north_flux == 2.0) and data.north_flux.shape == (3,)
        assert data.east_flux.shape == (4,)
        assert np.all(data.east_goldin.ratio == 0.0)

    def test_shape_mismatch_fails_fast(self):
        data = BoundaryData.default(n_z=4, n_r=3)
        with pytest.raises(AssertionError):
            data.check_shape(3, 3)


class TestQDParameters:
    """Tests for configuration validation."""

    def test_diag_alias(self):
        assert QDParameters(preconditioner="diag").preconditioner == "diagonal"
        assert QDParameters(preconditioner="ILU").preconditioner == "ilu"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"preconditioner": "amg"},
            {"linear_solver": "gmres"},
            {"backend": "trilinos"},
            {"source_mode": "grey-ish"},
            {"north": "open"},
            {"west": "flux"},
            {"solve_type": "SCB"},
        ],
    )
    def test_unrecognised_values_raise(self, kwargs):
        with pytest.raises(ConfigurationError):
            QDParameters(**kwargs)

    def test_serialisation(self):
        params = QDParameters(north="goldin")
        assert params.to_dataframe().shape[0] == 1
        logged = params.to_mlflow()
        assert logged["north"] == "goldin"
        assert all(isinstance(v, str) for v in logged.values())
