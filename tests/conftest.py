"""Pytest configuration and fixtures for quasidiffusion solver tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def small_mesh():
    """3 x 4 mesh on [0, 1] x [0, 2]."""
    from meshing import RZMesh

    return RZMesh.uniform(radius=1.0, height=2.0, n_r=3, n_z=4)


@pytest.fixture
def graded_mesh():
    """Non-uniform 4 x 3 mesh."""
    from meshing import RZMesh

    return RZMesh([0.0, 0.1, 0.35, 0.7, 1.2], [0.0, 0.5, 0.8, 1.6])


@pytest.fixture
def one_group_params():
    """One-group data: absorber with a uniform source."""
    return {"sig_t": [2.0], "q": [3.0], "velocity": [5.0]}


@pytest.fixture
def two_group_params():
    """Two-group data with down- and self-scattering and weak fission."""
    return {
        "sig_t": [1.0, 2.0],
        "sig_s": [[0.3, 0.2], [0.0, 0.9]],
        "nu": [2.4, 2.4],
        "sig_f": [0.01, 0.08],
        "chi_p": [1.0, 0.0],
        "velocity": [20.0, 2.0],
        "q": [1.0, 0.5],
    }


@pytest.fixture
def rng():
    return np.random.default_rng(1234)

