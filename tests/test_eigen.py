"""Tests for the dense eigensolver wrappers."""

from __future__ import annotations

import numpy as np
import pytest

from _threadcomm import run_spmd
from gwbse.eigen import diagonalize_A, diagonalize_C, eigh, matrix_power
from gwbse.fm import DistributedMatrix
from gwbse.grid import create_grid


def _spd(n: int, seed: int) -> np.ndarray:
    g = np.random.default_rng(seed).standard_normal((n, n))
    return g @ g.T + n * np.eye(n)


def test_eigh_matches_numpy():
    a = _spd(6, 0)
    grid = create_grid(None, block_size=4)
    w, fm_v = eigh(DistributedMatrix.from_global(grid, a, name="a"))
    v = fm_v.to_global()
    np.testing.assert_allclose(w, np.linalg.eigvalsh(a), rtol=1e-12)
    np.testing.assert_allclose(a @ v, v * w[None, :], atol=1e-10)
    assert fm_v.name == "a_eigvec"


def test_eigh_replicated_across_ranks():
    a = _spd(7, 1)

    def _rank(comm):
        grid = create_grid(comm, block_size=2)
        w, fm_v = eigh(DistributedMatrix.from_global(grid, a))
        return w, fm_v.to_global()

    out = run_spmd(4, _rank)
    w0, v0 = out[0]
    np.testing.assert_allclose(a @ v0, v0 * w0[None, :], atol=1e-10)
    for w, v in out[1:]:
        np.testing.assert_array_equal(w, w0)
        np.testing.assert_array_equal(v, v0)


@pytest.mark.parametrize("exponent", [-0.5, 0.5, 1.0, -1.0])
def test_matrix_power(exponent):
    a = _spd(5, 2)
    grid = create_grid(None, block_size=2)
    fm_p, w, n_dep = matrix_power(DistributedMatrix.from_global(grid, a), exponent)
    wr, vr = np.linalg.eigh(a)
    np.testing.assert_allclose(fm_p.to_global(), (vr * wr**exponent) @ vr.T, atol=1e-10)
    np.testing.assert_allclose(w, wr, rtol=1e-12)
    assert n_dep == 0


def test_matrix_power_threshold_drops_small_eigenvalues():
    v = np.linalg.qr(np.random.default_rng(3).standard_normal((4, 4)))[0]
    w = np.array([-1e-3, 1e-8, 0.5, 2.0])
    a = (v * w) @ v.T
    grid = create_grid(None, block_size=2)
    _, _, n_dep = matrix_power(DistributedMatrix.from_global(grid, a), -0.5)
    assert n_dep == 1
    fm_p, _, n_dep = matrix_power(DistributedMatrix.from_global(grid, a), -0.5, 1e-6)
    assert n_dep == 2
    keep = v[:, 2:]
    np.testing.assert_allclose(fm_p.to_global(), (keep * w[2:] ** -0.5) @ keep.T, atol=1e-8)


def test_eigh_rejects_bad_input():
    grid = create_grid(None, block_size=2)
    with pytest.raises(ValueError):
        eigh(DistributedMatrix.zeros(grid, 2, 3))
    bad = np.eye(3)
    bad[1, 0] = np.nan
    with pytest.raises(RuntimeError, match="non-finite"):
        eigh(DistributedMatrix.from_global(grid, bad))


def test_diagonalize_A_ascending():
    a = _spd(6, 4)
    grid = create_grid(None, block_size=3)
    exc, fm_x = diagonalize_A(DistributedMatrix.from_global(grid, a))
    assert np.all(np.diff(exc) >= 0.0)
    x = fm_x.to_global()
    np.testing.assert_allclose(x.T @ x, np.eye(6), atol=1e-10)


def test_diagonalize_C_negative_eigenvalue_raises():
    grid = create_grid(None, block_size=2)
    fm_c = DistributedMatrix.from_global(grid, np.diag([-0.1, 1.0]))
    eye = DistributedMatrix.from_global(grid, np.eye(2))
    with pytest.raises(RuntimeError, match="must be positive"):
        diagonalize_C(fm_c, eye, eye.copy())
