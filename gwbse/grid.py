"""2D process grids for block-cyclic dense matrices.

A :class:`ProcessGrid` is the analogue of a BLACS context: an ``nprow x npcol``
arrangement of the processes of one communicator together with the block sizes
used to distribute matrices over it.  Several grids can share a communicator;
matrices on different grids exchange data only through collective operations.

``comm=None`` selects serial mode (one process, no message passing).  Any
object implementing the mpi4py lowercase collectives (``Get_rank``,
``Get_size``, ``allgather``, ``alltoall``, ``bcast``) can be used otherwise,
typically ``mpi4py.MPI.COMM_WORLD``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from gwbse.config import default_block_size


@dataclass(frozen=True)
class ProcessGrid:
    """Process-grid context for block-cyclic distribution."""

    nprow: int
    npcol: int
    myprow: int
    mypcol: int
    block_rows: int
    block_cols: int
    comm: Any = field(default=None, compare=False, repr=False)

    @property
    def size(self) -> int:
        return self.nprow * self.npcol

    @property
    def rank(self) -> int:
        return self.rank_of(self.myprow, self.mypcol)

    @property
    def is_root(self) -> bool:
        return self.rank == 0

    @property
    def is_serial(self) -> bool:
        return self.comm is None

    def rank_of(self, prow: int, pcol: int) -> int:
        return int(prow) * self.npcol + int(pcol)

    def same_comm(self, other: "ProcessGrid") -> bool:
        return self.comm is other.comm

    def same_layout(self, other: "ProcessGrid") -> bool:
        return self == other and self.same_comm(other)

    # ------------------------------------------------------------------
    # Block-cyclic ownership
    # ------------------------------------------------------------------

    def row_owner(self, rows: np.ndarray) -> np.ndarray:
        return (np.asarray(rows, dtype=np.int64) // self.block_rows) % self.nprow

    def col_owner(self, cols: np.ndarray) -> np.ndarray:
        return (np.asarray(cols, dtype=np.int64) // self.block_cols) % self.npcol

    def owner_ranks(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        """Rank owning each global element ``(rows[k], cols[k])``."""
        return self.row_owner(rows) * self.npcol + self.col_owner(cols)

    def local_rows(self, nrow_global: int, prow: int | None = None) -> np.ndarray:
        """Global row indices owned by process row ``prow`` (default: this process)."""
        p = self.myprow if prow is None else int(prow)
        return _owned_indices(int(nrow_global), self.block_rows, self.nprow, p)

    def local_cols(self, ncol_global: int, pcol: int | None = None) -> np.ndarray:
        p = self.mypcol if pcol is None else int(pcol)
        return _owned_indices(int(ncol_global), self.block_cols, self.npcol, p)

    def global_to_local_rows(self, rows: np.ndarray) -> np.ndarray:
        rows = np.asarray(rows, dtype=np.int64)
        nb = self.block_rows
        return (rows // (nb * self.nprow)) * nb + rows % nb

    def global_to_local_cols(self, cols: np.ndarray) -> np.ndarray:
        cols = np.asarray(cols, dtype=np.int64)
        nb = self.block_cols
        return (cols // (nb * self.npcol)) * nb + cols % nb

    # ------------------------------------------------------------------
    # Collectives (identities in serial mode)
    # ------------------------------------------------------------------

    def allgather(self, obj: Any) -> list[Any]:
        if self.comm is None:
            return [obj]
        return list(self.comm.allgather(obj))

    def alltoall(self, objs: list[Any]) -> list[Any]:
        if len(objs) != self.size:
            raise ValueError(f"alltoall needs {self.size} send buffers, got {len(objs)}")
        if self.comm is None:
            return list(objs)
        return list(self.comm.alltoall(list(objs)))

    def bcast(self, obj: Any, root: int = 0) -> Any:
        if self.comm is None:
            return obj
        return self.comm.bcast(obj, root=root)


def _owned_indices(n_global: int, nb: int, nprocs: int, p: int) -> np.ndarray:
    idx = np.arange(n_global, dtype=np.int64)
    return idx[(idx // nb) % nprocs == p]


def _square_factors(n: int) -> tuple[int, int]:
    nprow = int(math.isqrt(int(n)))
    while nprow > 1 and n % nprow != 0:
        nprow -= 1
    return nprow, n // nprow


def create_grid(
    comm: Any = None,
    *,
    nprow: int | None = None,
    npcol: int | None = None,
    block_size: int | tuple[int, int] | None = None,
) -> ProcessGrid:
    """Create a process grid over ``comm`` (serial when ``comm`` is None).

    Parameters
    ----------
    comm : mpi4py-style communicator or None
        Processes spanned by the grid.
    nprow, npcol : int, optional
        Grid shape. Missing values are derived from the communicator size;
        by default the most square layout with ``nprow <= npcol`` is used.
    block_size : int or (int, int), optional
        Block sizes of the block-cyclic distribution (``GWBSE_BLOCK_SIZE`` or 32).

    Collective over ``comm``.
    """
    if comm is None:
        size, rank = 1, 0
    else:
        size, rank = int(comm.Get_size()), int(comm.Get_rank())

    if nprow is None and npcol is None:
        nprow, npcol = _square_factors(size)
    elif nprow is None:
        if size % int(npcol) != 0:
            raise ValueError(f"npcol={npcol} does not divide the number of processes {size}")
        nprow = size // int(npcol)
    elif npcol is None:
        if size % int(nprow) != 0:
            raise ValueError(f"nprow={nprow} does not divide the number of processes {size}")
        npcol = size // int(nprow)
    nprow, npcol = int(nprow), int(npcol)
    if nprow < 1 or npcol < 1 or nprow * npcol != size:
        raise ValueError(f"grid {nprow}x{npcol} does not match the number of processes {size}")

    if block_size is None:
        block_size = default_block_size()
    if isinstance(block_size, tuple):
        nb_r, nb_c = int(block_size[0]), int(block_size[1])
    else:
        nb_r = nb_c = int(block_size)
    if nb_r < 1 or nb_c < 1:
        raise ValueError(f"block sizes must be >= 1, got {(nb_r, nb_c)}")

    return ProcessGrid(
        nprow=nprow,
        npcol=npcol,
        myprow=rank // npcol,
        mypcol=rank % npcol,
        block_rows=nb_r,
        block_cols=nb_c,
        comm=comm,
    )


__all__ = ["ProcessGrid", "create_grid"]
