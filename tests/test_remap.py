"""Tests for the permuted pair-index accumulation (fm_general_add)."""

from __future__ import annotations

import numpy as np
import pytest

from _threadcomm import run_spmd
from gwbse.fm import DistributedMatrix
from gwbse.grid import ProcessGrid, create_grid
from gwbse.remap import (
    COL1,
    COL2,
    PERM_IBJA_TO_IAJB,
    PERM_IJAB_TO_IAJB,
    ROW1,
    ROW2,
    IndexFactor,
    describe_permutation,
    fm_general_add,
    invert_permutation,
    remap_indices,
)


def _ijab_to_iajb(w: np.ndarray, homo: int, virtual: int) -> np.ndarray:
    return w.reshape(homo, homo, virtual, virtual).transpose(0, 2, 1, 3).reshape(homo * virtual, homo * virtual)


def _ibja_to_iajb(w: np.ndarray, homo: int, virtual: int) -> np.ndarray:
    return w.reshape(homo, virtual, homo, virtual).transpose(0, 3, 2, 1).reshape(homo * virtual, homo * virtual)


def test_remap_indices_single_element():
    # W[ij=(1,0), ab=(2,1)] with homo=2, virtual=3 lands on A[ia=(1,2), jb=(0,1)]
    rows, cols = remap_indices(
        np.array([1 * 2 + 0]),
        np.array([2 * 3 + 1]),
        IndexFactor(2, 2),
        IndexFactor(3, 3),
        IndexFactor(2, 3),
        IndexFactor(2, 3),
        PERM_IJAB_TO_IAJB,
    )
    assert (int(rows[0]), int(cols[0])) == (1 * 3 + 2, 0 * 3 + 1)


def test_general_add_ijab_serial():
    homo, virtual = 2, 3
    w = np.random.default_rng(0).standard_normal((homo * homo, virtual * virtual))
    grid = create_grid(None, block_size=2)
    dest = DistributedMatrix.from_global(grid, np.ones((homo * virtual, homo * virtual)))
    fm_general_add(
        dest,
        DistributedMatrix.from_global(grid, w),
        -1.0,
        IndexFactor(homo, homo),
        IndexFactor(virtual, virtual),
        IndexFactor(homo, virtual),
        IndexFactor(homo, virtual),
        PERM_IJAB_TO_IAJB,
    )
    np.testing.assert_allclose(dest.to_global(), 1.0 - _ijab_to_iajb(w, homo, virtual))


def test_general_add_ibja_serial():
    homo, virtual = 3, 2
    w = np.random.default_rng(1).standard_normal((homo * virtual, homo * virtual))
    grid = create_grid(None, block_size=4)
    dest = DistributedMatrix.zeros(grid, homo * virtual, homo * virtual)
    f = IndexFactor(homo, virtual)
    fm_general_add(dest, DistributedMatrix.from_global(grid, w), 0.5, f, f, f, f, PERM_IBJA_TO_IAJB)
    np.testing.assert_allclose(dest.to_global(), 0.5 * _ibja_to_iajb(w, homo, virtual))


def test_identity_permutation_copies():
    grid = create_grid(None, block_size=2)
    src = np.arange(24.0).reshape(4, 6)
    dest = DistributedMatrix.zeros(grid, 4, 6)
    fm_general_add(
        dest,
        DistributedMatrix.from_global(grid, src),
        1.0,
        IndexFactor(2, 2),
        IndexFactor(3, 2),
        IndexFactor(2, 2),
        IndexFactor(3, 2),
        (ROW1, ROW2, COL1, COL2),
    )
    np.testing.assert_array_equal(dest.to_global(), src)


@pytest.mark.parametrize("perm", [PERM_IJAB_TO_IAJB, PERM_IBJA_TO_IAJB, (COL2, ROW1, ROW2, COL1)])
def test_inverse_permutation_round_trip(perm):
    ext = (2, 3, 4, 5)  # (row1, row2, col1, col2) of the source
    src = np.random.default_rng(2).standard_normal((ext[0] * ext[1], ext[2] * ext[3]))
    d = [ext[perm[k]] for k in range(4)]
    grid = create_grid(None, block_size=3)
    mid = DistributedMatrix.zeros(grid, d[0] * d[1], d[2] * d[3])
    fm_general_add(
        mid,
        DistributedMatrix.from_global(grid, src),
        1.0,
        IndexFactor(ext[0], ext[1]),
        IndexFactor(ext[2], ext[3]),
        IndexFactor(d[0], d[1]),
        IndexFactor(d[2], d[3]),
        perm,
    )
    back = DistributedMatrix.zeros(grid, src.shape[0], src.shape[1])
    fm_general_add(
        back,
        mid,
        1.0,
        IndexFactor(d[0], d[1]),
        IndexFactor(d[2], d[3]),
        IndexFactor(ext[0], ext[1]),
        IndexFactor(ext[2], ext[3]),
        invert_permutation(perm),
    )
    np.testing.assert_array_equal(back.to_global(), src)


def test_general_add_between_different_grids():
    homo, virtual = 3, 4
    rng = np.random.default_rng(3)
    w_a = rng.standard_normal((homo * homo, virtual * virtual))
    w_b = rng.standard_normal((homo * virtual, homo * virtual))
    a0 = rng.standard_normal((homo * virtual, homo * virtual))

    def _rank(comm):
        grid = create_grid(comm, block_size=2)
        grid_w = create_grid(comm, nprow=1, block_size=3)
        dest = DistributedMatrix.from_global(grid, a0)
        fm_general_add(
            dest,
            DistributedMatrix.from_global(grid_w, w_a),
            -1.0,
            IndexFactor(homo, homo),
            IndexFactor(virtual, virtual),
            IndexFactor(homo, virtual),
            IndexFactor(homo, virtual),
            PERM_IJAB_TO_IAJB,
        )
        f = IndexFactor(homo, virtual)
        fm_general_add(dest, DistributedMatrix.from_global(grid_w, w_b), 2.0, f, f, f, f, PERM_IBJA_TO_IAJB)
        return dest.to_global()

    expected = a0 - _ijab_to_iajb(w_a, homo, virtual) + 2.0 * _ibja_to_iajb(w_b, homo, virtual)
    for full in run_spmd(4, _rank):
        np.testing.assert_allclose(full, expected, atol=1e-12)


def test_rejects_bad_factors_and_permutations():
    grid = create_grid(None, block_size=2)
    src = DistributedMatrix.zeros(grid, 6, 6)
    dest = DistributedMatrix.zeros(grid, 6, 6)
    good = (IndexFactor(2, 3), IndexFactor(3, 2), IndexFactor(2, 3), IndexFactor(3, 2))

    with pytest.raises(ValueError, match="permutation"):
        fm_general_add(dest, src, 1.0, *good, (ROW1, ROW1, COL1, COL2))
    with pytest.raises(ValueError, match="factor"):
        fm_general_add(dest, src, 1.0, IndexFactor(2, 2), good[1], good[2], good[3], PERM_IJAB_TO_IAJB)
    # row1=2, row2=3, col1=3, col2=2 -> (row1, col1, row2, col2) needs dest (2, 3) x (3, 2)
    with pytest.raises(ValueError, match="bijection"):
        fm_general_add(dest, src, 1.0, good[0], good[1], IndexFactor(3, 2), IndexFactor(2, 3), PERM_IJAB_TO_IAJB)
    fm_general_add(dest, src, 1.0, good[0], good[1], IndexFactor(2, 3), IndexFactor(3, 2), PERM_IJAB_TO_IAJB)

    foreign = ProcessGrid(1, 1, 0, 0, 2, 2, comm=object())
    with pytest.raises(ValueError, match="communicator"):
        fm_general_add(DistributedMatrix.zeros(foreign, 6, 6), src, 1.0, *good, (ROW1, ROW2, COL1, COL2))


def test_describe_permutation():
    assert describe_permutation(PERM_IJAB_TO_IAJB) == "(row1, col1, row2, col2)"
    assert invert_permutation(PERM_IJAB_TO_IAJB) == PERM_IJAB_TO_IAJB
    assert invert_permutation(PERM_IBJA_TO_IAJB) == PERM_IBJA_TO_IAJB
