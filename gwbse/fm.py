from __future__ import annotations

"""Block-cyclic distributed dense matrices.

Each process holds ``local_data`` for the global rows ``row_indices`` and the
global columns ``col_indices`` that the owning :class:`~gwbse.grid.ProcessGrid`
assigns to it.  Operations that touch other processes' data (gather, GEMM,
remap, diagonalization) are collective: all processes of the grid must call
them in the same order.
"""

from typing import Any

import numpy as np

from gwbse.grid import ProcessGrid


class DistributedMatrix:
    """Real dense matrix distributed block-cyclically over a process grid."""

    __slots__ = ("grid", "nrow_global", "ncol_global", "row_indices", "col_indices", "name", "_data")

    def __init__(
        self,
        grid: ProcessGrid,
        nrow_global: int,
        ncol_global: int,
        local_data: np.ndarray | None = None,
        *,
        name: str = "",
    ):
        nrow_global = int(nrow_global)
        ncol_global = int(ncol_global)
        if nrow_global < 0 or ncol_global < 0:
            raise ValueError(f"invalid global shape ({nrow_global}, {ncol_global})")
        self.grid = grid
        self.nrow_global = nrow_global
        self.ncol_global = ncol_global
        self.row_indices = grid.local_rows(nrow_global)
        self.col_indices = grid.local_cols(ncol_global)
        self.name = str(name)
        shape = (self.row_indices.size, self.col_indices.size)
        if local_data is None:
            self._data: np.ndarray | None = np.zeros(shape, dtype=np.float64)
        else:
            data = np.asarray(local_data, dtype=np.float64)
            if data.shape != shape:
                raise ValueError(f"local block of {self.name or 'matrix'} must have shape {shape}, got {data.shape}")
            self._data = np.array(data, dtype=np.float64, order="C", copy=True)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def zeros(cls, grid: ProcessGrid, nrow_global: int, ncol_global: int, *, name: str = "") -> "DistributedMatrix":
        return cls(grid, nrow_global, ncol_global, name=name)

    @classmethod
    def from_global(cls, grid: ProcessGrid, array: Any, *, name: str = "") -> "DistributedMatrix":
        """Distribute a replicated global array (every process passes the same data)."""
        a = np.asarray(array, dtype=np.float64)
        if a.ndim != 2:
            raise ValueError(f"expected a 2D array, got shape {a.shape}")
        out = cls(grid, a.shape[0], a.shape[1], name=name)
        out._data = np.ascontiguousarray(a[np.ix_(out.row_indices, out.col_indices)])
        return out

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def local_data(self) -> np.ndarray:
        if self._data is None:
            raise RuntimeError(f"matrix {self.name or '<unnamed>'} has been released")
        return self._data

    @local_data.setter
    def local_data(self, value: np.ndarray) -> None:
        value = np.asarray(value, dtype=np.float64)
        if value.shape != self.local_shape:
            raise ValueError(f"local block must have shape {self.local_shape}, got {value.shape}")
        self._data = value

    @property
    def shape(self) -> tuple[int, int]:
        return (self.nrow_global, self.ncol_global)

    @property
    def local_shape(self) -> tuple[int, int]:
        return (int(self.row_indices.size), int(self.col_indices.size))

    @property
    def released(self) -> bool:
        return self._data is None

    def __repr__(self) -> str:
        state = "released" if self.released else f"local={self.local_shape}"
        return f"DistributedMatrix(name={self.name!r}, shape={self.shape}, {state})"

    def release(self) -> None:
        """Drop the local buffer; later use of this matrix raises RuntimeError."""
        self._data = None

    def compatible_with(self, other: "DistributedMatrix") -> bool:
        return self.shape == other.shape and self.grid.same_layout(other.grid)

    # ------------------------------------------------------------------
    # Elementwise operations (local, no communication)
    # ------------------------------------------------------------------

    def copy(self, *, name: str | None = None) -> "DistributedMatrix":
        return DistributedMatrix(
            self.grid,
            self.nrow_global,
            self.ncol_global,
            self.local_data,
            name=self.name if name is None else name,
        )

    def set_all(self, value: float) -> None:
        self.local_data.fill(float(value))

    def scale_and_add(self, alpha: float, beta: float, other: "DistributedMatrix") -> None:
        """``self = alpha * self + beta * other`` (same grid layout required)."""
        if not self.compatible_with(other):
            raise ValueError(
                f"scale_and_add needs matrices with identical shape and grid layout, "
                f"got {self.shape} and {other.shape}"
            )
        data = self.local_data
        if float(alpha) != 1.0:
            data *= float(alpha)
        data += float(beta) * other.local_data

    def scale_columns(self, factors: np.ndarray) -> None:
        """Multiply global column ``j`` by ``factors[j]``."""
        factors = np.asarray(factors, dtype=np.float64).ravel()
        if factors.size != self.ncol_global:
            raise ValueError(f"need {self.ncol_global} column factors, got {factors.size}")
        self.local_data *= factors[self.col_indices][None, :]

    def add_to_diagonal(self, values: np.ndarray) -> None:
        """Add ``values[k]`` to global element ``(k, k)``."""
        values = np.asarray(values, dtype=np.float64).ravel()
        n = min(self.nrow_global, self.ncol_global)
        if values.size != n:
            raise ValueError(f"need {n} diagonal values, got {values.size}")
        rows = self.row_indices
        cols = self.col_indices
        col_pos = np.full(self.ncol_global, -1, dtype=np.int64)
        col_pos[cols] = np.arange(cols.size, dtype=np.int64)
        r_loc = np.nonzero(rows < n)[0]
        c_loc = col_pos[rows[r_loc]]
        keep = c_loc >= 0
        r_loc = r_loc[keep]
        c_loc = c_loc[keep]
        self.local_data[r_loc, c_loc] += values[rows[r_loc]]

    # ------------------------------------------------------------------
    # Collective
    # ------------------------------------------------------------------

    def to_global(self) -> np.ndarray:
        """Gather the full matrix on every process (collective)."""
        data = self.local_data
        if self.grid.is_serial:
            out = np.zeros(self.shape, dtype=np.float64)
            out[np.ix_(self.row_indices, self.col_indices)] = data
            return out
        pieces = self.grid.allgather((self.row_indices, self.col_indices, data))
        out = np.zeros(self.shape, dtype=np.float64)
        for rows, cols, block in pieces:
            if block.size:
                out[np.ix_(rows, cols)] = block
        return out

    def get_column(self, j: int) -> np.ndarray:
        """Gather global column ``j`` on every process (collective)."""
        j = int(j)
        if not 0 <= j < self.ncol_global:
            raise IndexError(f"column {j} out of range for {self.ncol_global} columns")
        hit = np.nonzero(self.col_indices == j)[0]
        if hit.size:
            mine = (self.row_indices, np.array(self.local_data[:, int(hit[0])], copy=True))
        else:
            mine = (np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64))
        out = np.zeros(self.nrow_global, dtype=np.float64)
        for rows, vals in self.grid.allgather(mine):
            out[rows] = vals
        return out


def _op(a: np.ndarray, trans: str) -> np.ndarray:
    t = str(trans).strip().upper()
    if t == "N":
        return a
    if t in ("T", "C"):
        return a.T
    raise ValueError(f"trans must be 'N' or 'T', got {trans!r}")


def parallel_gemm(
    transa: str,
    transb: str,
    alpha: float,
    a: DistributedMatrix,
    b: DistributedMatrix,
    beta: float,
    c: DistributedMatrix,
) -> None:
    """``c = alpha * op(a) @ op(b) + beta * c`` (collective).

    ``a``, ``b`` and ``c`` may live on different grids of the same communicator.
    Each process computes only its own block of ``c``.
    """
    if not (a.grid.same_comm(c.grid) and b.grid.same_comm(c.grid)):
        raise ValueError("parallel_gemm operands must share one communicator")

    m_a, k_a = (a.nrow_global, a.ncol_global) if str(transa).upper() == "N" else (a.ncol_global, a.nrow_global)
    k_b, n_b = (b.nrow_global, b.ncol_global) if str(transb).upper() == "N" else (b.ncol_global, b.nrow_global)
    if k_a != k_b or (m_a, n_b) != c.shape:
        raise ValueError(
            f"parallel_gemm shape mismatch: op(a)=({m_a},{k_a}), op(b)=({k_b},{n_b}), c={c.shape}"
        )

    a_glob = a.to_global()
    b_glob = a_glob if b is a else b.to_global()
    a_full = _op(a_glob, transa)
    b_full = _op(b_glob, transb)

    c_loc = c.local_data
    prod = a_full[c.row_indices, :] @ b_full[:, c.col_indices]
    if float(beta) == 0.0:
        c_loc[...] = float(alpha) * prod
    else:
        c_loc *= float(beta)
        c_loc += float(alpha) * prod


__all__ = ["DistributedMatrix", "parallel_gemm"]
