"""Excitation amplitudes from the eigenvectors of the Hermitian BSE form.

For C Z^n = (Ω^n)^2 Z^n the (X, Y) eigenvectors of the ABBA problem follow
from (Furche, J. Chem. Phys. 114, 5982 (2001), Eq. A10)::

    (X+Y)^n = (Ω^n)^{-1/2} (A-B)^{+1/2} Z^n
    (X-Y)^n = (Ω^n)^{+1/2} (A-B)^{-1/2} Z^n
    X^n     = [(X+Y)^n + (X-Y)^n] / 2

The 1/2 of the last line is folded into the column scaling of the two
products, so X is the plain sum of the scaled matrices.  Normalization is
(X+Y)^T (X-Y) = Z^T Z = 1.
"""

from __future__ import annotations

import numpy as np

from gwbse.fm import DistributedMatrix, parallel_gemm
from gwbse.logger import BSELogger, new_logger
from gwbse.result import ExcitationRecord, Transition


def scale_columns_by_energy(
    fm_work: DistributedMatrix,
    exc_ens: np.ndarray,
    exponent: float,
    prefactor: float = 1.0,
) -> None:
    """Scale column n of ``fm_work`` by ``prefactor * exc_ens[n] ** exponent``."""
    exc_ens = np.asarray(exc_ens, dtype=np.float64).ravel()
    fm_work.scale_columns(float(prefactor) * np.power(exc_ens, float(exponent)))


def reconstruct_amplitudes(
    fm_eigvec: DistributedMatrix,
    exc_ens: np.ndarray,
    fm_sqrt_a_minus_b: DistributedMatrix,
    fm_inv_sqrt_a_minus_b: DistributedMatrix,
    *,
    log: BSELogger | None = None,
) -> DistributedMatrix:
    """Back-transform eigenvectors Z of C into the amplitudes X (collective).

    ``fm_eigvec``, ``fm_sqrt_a_minus_b`` and ``fm_inv_sqrt_a_minus_b`` are
    released once consumed.
    """
    log = new_logger(verbose=log)
    n = fm_eigvec.nrow_global
    exc_ens = np.asarray(exc_ens, dtype=np.float64).ravel()
    if exc_ens.size != fm_eigvec.ncol_global:
        raise ValueError(f"need {fm_eigvec.ncol_global} excitation energies, got {exc_ens.size}")
    if np.any(exc_ens <= 0.0):
        raise ValueError("excitation energies must be positive to back-transform eigenvectors")

    # (X+Y)/2 = 1/2 Ω^-0.5 (A-B)^0.5 Z
    fm_x = DistributedMatrix.zeros(fm_eigvec.grid, n, fm_eigvec.ncol_global, name="fm_X_plus_Y")
    parallel_gemm("N", "N", 1.0, fm_sqrt_a_minus_b, fm_eigvec, 0.0, fm_x)
    fm_sqrt_a_minus_b.release()
    scale_columns_by_energy(fm_x, exc_ens, -0.5, prefactor=0.5)

    # (X-Y)/2 = 1/2 Ω^0.5 (A-B)^-0.5 Z
    fm_x_minus_y = DistributedMatrix.zeros(fm_eigvec.grid, n, fm_eigvec.ncol_global, name="fm_X_minus_Y")
    parallel_gemm("N", "N", 1.0, fm_inv_sqrt_a_minus_b, fm_eigvec, 0.0, fm_x_minus_y)
    fm_inv_sqrt_a_minus_b.release()
    fm_eigvec.release()
    scale_columns_by_energy(fm_x_minus_y, exc_ens, 0.5, prefactor=0.5)

    fm_x.scale_and_add(1.0, 1.0, fm_x_minus_y)
    fm_x_minus_y.release()
    fm_x.name = "fm_X"
    log.debug("Back-transformed eigenvectors of C to X")
    return fm_x


def filter_eigvec_contrib(
    fm_eigvec: DistributedMatrix,
    i_exc: int,
    homo: int,
    virtual: int,
    eps_x: float,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Entries of eigenvector ``i_exc`` with ``|X_ia| > eps_x`` (collective).

    Returns 0-based occupied indices, 0-based virtual indices and the signed
    amplitudes, ordered by the combined index ``ia = i * virtual + a``.
    """
    if fm_eigvec.nrow_global != int(homo) * int(virtual):
        raise ValueError(
            f"eigenvector length {fm_eigvec.nrow_global} does not match homo*virtual={int(homo) * int(virtual)}"
        )
    col = fm_eigvec.get_column(int(i_exc))
    ia = np.nonzero(np.abs(col) > float(eps_x))[0]
    return ia // int(virtual), ia % int(virtual), col[ia]


def build_records(
    fm_eigvec: DistributedMatrix,
    exc_ens: np.ndarray,
    homo: int,
    virtual: int,
    homo_irred: int,
    *,
    spin_config: str,
    approximation: str,
    eps_x: float,
    num_print_exc: int,
) -> list[ExcitationRecord]:
    """Excitation records for the first ``min(homo*virtual, num_print_exc)`` excitations."""
    nexc = min(int(homo) * int(virtual), int(num_print_exc))
    occ_offset = int(homo_irred) - int(homo) + 1
    virt_offset = int(homo_irred) + 1
    records: list[ExcitationRecord] = []
    for i_exc in range(nexc):
        idx_homo, idx_virt, entries = filter_eigvec_contrib(fm_eigvec, i_exc, homo, virtual, eps_x)
        transitions = tuple(
            Transition(occ=int(i) + occ_offset, virt=int(a) + virt_offset, amplitude=float(x))
            for i, a, x in zip(idx_homo, idx_virt, entries)
        )
        records.append(
            ExcitationRecord(
                index=i_exc + 1,
                energy=float(exc_ens[i_exc]),
                spin_config=str(spin_config),
                approximation=str(approximation),
                transitions=transitions,
            )
        )
    return records


__all__ = ["build_records", "filter_eigvec_contrib", "reconstruct_amplitudes", "scale_columns_by_energy"]
