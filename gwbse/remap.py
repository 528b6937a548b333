"""Permuted accumulation between matrices with factored (pair) indices.

Both matrices involved use *combined pair indices* on rows and columns: a row
index ``r`` of a matrix with row factor ``IndexFactor(n1, n2)`` stands for the
pair ``(r1, r2) = (r // n2, r % n2)``, and likewise for columns.  Every element
of the source therefore carries four sub-indices

    s = (row1, row2, col1, col2)

and a permutation ``perm`` builds the destination sub-indices as
``d[k] = s[perm[k]]``, which are recombined with the destination factors.

Example (matrix A of the BSE)::

    W[ij, ab]  --perm=(ROW1, COL1, ROW2, COL2)-->  A[ia, jb]

The operation is a full redistribution between two block-cyclic layouts: each
process routes its source entries to the owners of the destination entries
with one all-to-all exchange and accumulates what it receives.
"""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np

from gwbse.fm import DistributedMatrix

# Sub-index labels of a factored (row, col) element.
ROW1 = 0
ROW2 = 1
COL1 = 2
COL2 = 3

_LABELS = ("row1", "row2", "col1", "col2")


class IndexFactor(NamedTuple):
    """Split of a combined index into (slow, fast) sub-indices of extents (n1, n2)."""

    n1: int
    n2: int

    @property
    def size(self) -> int:
        return int(self.n1) * int(self.n2)


# Permutations used by the BSE matrix builders.
# W_ij,ab -> A_ia,jb
PERM_IJAB_TO_IAJB = (ROW1, COL1, ROW2, COL2)
# W_ib,ja -> B_ia,jb
PERM_IBJA_TO_IAJB = (ROW1, COL2, COL1, ROW2)


def _check_permutation(perm: Sequence[int]) -> tuple[int, int, int, int]:
    p = tuple(int(x) for x in perm)
    if len(p) != 4 or sorted(p) != [0, 1, 2, 3]:
        raise ValueError(f"permutation must reorder (0, 1, 2, 3), got {tuple(perm)}")
    return p  # type: ignore[return-value]


def invert_permutation(perm: Sequence[int]) -> tuple[int, int, int, int]:
    """Permutation that maps the destination layout of ``perm`` back to its source."""
    p = _check_permutation(perm)
    inv = [0, 0, 0, 0]
    for k, s in enumerate(p):
        inv[s] = k
    return tuple(inv)  # type: ignore[return-value]


def describe_permutation(perm: Sequence[int]) -> str:
    p = _check_permutation(perm)
    return "(" + ", ".join(_LABELS[s] for s in p) + ")"


def remap_indices(
    rows: np.ndarray,
    cols: np.ndarray,
    row_factor_src: IndexFactor,
    col_factor_src: IndexFactor,
    row_factor_dest: IndexFactor,
    col_factor_dest: IndexFactor,
    perm: Sequence[int],
) -> tuple[np.ndarray, np.ndarray]:
    """Map source global (row, col) index arrays to destination global indices."""
    p = _check_permutation(perm)
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    sub = (
        rows // int(row_factor_src.n2),
        rows % int(row_factor_src.n2),
        cols // int(col_factor_src.n2),
        cols % int(col_factor_src.n2),
    )
    d = [sub[p[k]] for k in range(4)]
    rows_out = d[0] * int(row_factor_dest.n2) + d[1]
    cols_out = d[2] * int(col_factor_dest.n2) + d[3]
    return rows_out, cols_out


def _validate(
    dest: DistributedMatrix,
    src: DistributedMatrix,
    row_factor_src: IndexFactor,
    col_factor_src: IndexFactor,
    row_factor_dest: IndexFactor,
    col_factor_dest: IndexFactor,
    perm: tuple[int, int, int, int],
) -> None:
    if row_factor_src.size != src.nrow_global or col_factor_src.size != src.ncol_global:
        raise ValueError(
            f"source factors {tuple(row_factor_src)}x{tuple(col_factor_src)} do not factor "
            f"source shape {src.shape}"
        )
    if row_factor_dest.size != dest.nrow_global or col_factor_dest.size != dest.ncol_global:
        raise ValueError(
            f"destination factors {tuple(row_factor_dest)}x{tuple(col_factor_dest)} do not factor "
            f"destination shape {dest.shape}"
        )
    src_ext = (row_factor_src.n1, row_factor_src.n2, col_factor_src.n1, col_factor_src.n2)
    dest_ext = (row_factor_dest.n1, row_factor_dest.n2, col_factor_dest.n1, col_factor_dest.n2)
    for k in range(4):
        if int(dest_ext[k]) != int(src_ext[perm[k]]):
            raise ValueError(
                f"permutation {describe_permutation(perm)} is not a bijection: destination "
                f"{_LABELS[k]} has extent {dest_ext[k]}, source {_LABELS[perm[k]]} has {src_ext[perm[k]]}"
            )
    if not dest.grid.same_comm(src.grid):
        raise ValueError("source and destination must share one communicator")


def fm_general_add(
    dest: DistributedMatrix,
    src: DistributedMatrix,
    scale: float,
    row_factor_src: IndexFactor | tuple[int, int],
    col_factor_src: IndexFactor | tuple[int, int],
    row_factor_dest: IndexFactor | tuple[int, int],
    col_factor_dest: IndexFactor | tuple[int, int],
    perm: Sequence[int],
) -> None:
    """``dest[perm(s)] += scale * src[s]`` for every element of ``src`` (collective).

    Parameters
    ----------
    dest, src : DistributedMatrix
        May live on different process grids of the same communicator.
    scale : float
        Prefactor applied to the source values.
    row_factor_src, col_factor_src : IndexFactor
        Factorization of the source row/column combined indices.
    row_factor_dest, col_factor_dest : IndexFactor
        Factorization of the destination row/column combined indices.
    perm : 4-sequence of {ROW1, ROW2, COL1, COL2}
        Destination slot ``k`` takes source sub-index ``perm[k]``.
    """
    rfs, cfs = IndexFactor(*row_factor_src), IndexFactor(*col_factor_src)
    rfd, cfd = IndexFactor(*row_factor_dest), IndexFactor(*col_factor_dest)
    p = _check_permutation(perm)
    _validate(dest, src, rfs, cfs, rfd, cfd, p)

    grid_out = dest.grid
    src_data = src.local_data
    dest_data = dest.local_data

    rows_src, cols_src = np.meshgrid(src.row_indices, src.col_indices, indexing="ij")
    rows_out, cols_out = remap_indices(rows_src.ravel(), cols_src.ravel(), rfs, cfs, rfd, cfd, p)
    vals = float(scale) * src_data.ravel()

    if grid_out.is_serial:
        received = [(rows_out, cols_out, vals)]
    else:
        owner = grid_out.owner_ranks(rows_out, cols_out)
        order = np.argsort(owner, kind="stable")
        owner_sorted = owner[order]
        bounds = np.searchsorted(owner_sorted, np.arange(grid_out.size + 1, dtype=np.int64))
        send = []
        for dst in range(grid_out.size):
            sel = order[bounds[dst]:bounds[dst + 1]]
            send.append((rows_out[sel], cols_out[sel], vals[sel]))
        received = grid_out.alltoall(send)

    for r, c, v in received:
        if v.size == 0:
            continue
        r_loc = grid_out.global_to_local_rows(r)
        c_loc = grid_out.global_to_local_cols(c)
        np.add.at(dest_data, (r_loc, c_loc), v)


__all__ = [
    "ROW1",
    "ROW2",
    "COL1",
    "COL2",
    "IndexFactor",
    "PERM_IJAB_TO_IAJB",
    "PERM_IBJA_TO_IAJB",
    "describe_permutation",
    "fm_general_add",
    "invert_permutation",
    "remap_indices",
]
