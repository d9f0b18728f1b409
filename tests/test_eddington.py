"""Tests for Eddington fields, face averaging and the integrating factor."""

import numpy as np
import pytest

from quasidiffusion.eddington import EddingtonField, integrating_factor
from quasidiffusion.materials import GroupConstants, face_average


class TestEddingtonField:
    """Tests for construction of Eddington fields."""

    def test_diffusion_limit_shapes(self):
        edd = EddingtonField.diffusion_limit(n_z=4, n_r=3)
        edd.check_shape(4, 3)
        assert np.allclose(edd.err, 1 / 3)
        assert np.allclose(edd.ezz_axial, 1 / 3)
        assert np.all(edd.erz_radial == 0.0)

    def test_from_uniform_cells_matches_diffusion_limit(self, small_mesh):
        n_z, n_r = small_mesh.shape
        third = np.full((n_z, n_r), 1 / 3)
        edd = EddingtonField.from_cell_values(small_mesh, third, third, np.zeros((n_z, n_r)))
        ref = EddingtonField.diffusion_limit(n_z, n_r)
        for name in ("err_radial", "ezz_radial", "erz_radial", "err_axial", "ezz_axial", "erz_axial"):
            assert np.allclose(getattr(edd, name), getattr(ref, name))

    def test_shape_mismatch_fails_fast(self, small_mesh):
        with pytest.raises(AssertionError):
            EddingtonField.from_cell_values(small_mesh, np.ones((2, 2)), np.ones((2, 2)), np.zeros((2, 2)))


class TestFaceAverage:
    """Tests for volume-weighted face interpolation."""

    def test_harmonic_interior_face(self):
        values = np.array([[1.0, 3.0]])
        weights = np.array([[1.0, 1.0]])
        faces = face_average(values, weights, axis=1)
        assert faces.shape == (1, 3)
        assert faces[0, 0] == 1.0 and faces[0, 2] == 3.0
        assert faces[0, 1] == pytest.approx(2.0 / (1.0 + 1.0 / 3.0))

    def test_arithmetic_interior_face(self):
        values = np.array([[0.0], [-1.0]])
        weights = np.array([[1.0], [3.0]])
        faces = face_average(values, weights, axis=0, harmonic=False)
        assert faces.shape == (3, 1)
        assert faces[1, 0] == pytest.approx(-0.75)

    def test_face_cross_sections(self, small_mesh):
        """Uniform cross sections are unchanged by face averaging."""
        m = GroupConstants.uniform(*small_mesh.shape, sig_t=[1.5, 0.7])
        assert m.radial_face_sig_t(small_mesh).shape == (4, 4, 2)
        assert m.axial_face_sig_t(small_mesh).shape == (5, 3, 2)
        assert np.allclose(m.radial_face_sig_t(small_mesh)[..., 1], 0.7)


class TestIntegratingFactor:
    """Tests for the axis integrating factor."""

    @pytest.mark.parametrize("iR", [0, 1, 2])
    def test_unity_in_diffusion_limit(self, small_mesh, iR):
        edd = EddingtonField.diffusion_limit(*small_mesh.shape)
        g = small_mesh.cell_geometry(iR, 0)
        for r in (g.r_down, g.r_avg, g.r_up):
            assert integrating_factor(edd, iR, 0, g.r_down, g.r_up, r) == pytest.approx(1.0)

    def test_power_law_off_axis(self, small_mesh):
        n_z, n_r = small_mesh.shape
        err = np.full((n_z, n_r), 0.4)
        ezz = np.full((n_z, n_r), 0.3)
        edd = EddingtonField.from_cell_values(small_mesh, err, ezz, np.zeros((n_z, n_r)))
        G = 1 + (0.4 + 0.3 - 1) / 0.4
        g = small_mesh.cell_geometry(1, 0)
        assert integrating_factor(edd, 1, 0, g.r_down, g.r_up, 0.5) == pytest.approx(0.5**G)

    def test_finite_on_axis(self, small_mesh):
        """The axis cell uses the exponential form, finite at r = 0."""
        n_z, n_r = small_mesh.shape
        edd = EddingtonField.from_cell_values(
            small_mesh, np.full((n_z, n_r), 0.4), np.full((n_z, n_r), 0.3), np.zeros((n_z, n_r))
        )
        g = small_mesh.cell_geometry(0, 0)
        assert integrating_factor(edd, 0, 0, g.r_down, g.r_up, 0.0) == pytest.approx(1.0)
        assert np.isfinite(integrating_factor(edd, 0, 0, g.r_down, g.r_up, g.r_up))

    def test_zero_err_raises(self, small_mesh):
        edd = EddingtonField.diffusion_limit(*small_mesh.shape)
        edd.err[0, 1] = 0.0
        g = small_mesh.cell_geometry(1, 0)
        with pytest.raises(ValueError):
            integrating_factor(edd, 1, 0, g.r_down, g.r_up, g.r_avg)
