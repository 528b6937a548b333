"""Dense symmetric eigensolver wrappers for the BSE matrices.

The matrices handled here have dimension ``homo * virtual``; they are gathered
and diagonalized with :func:`scipy.linalg.eigh` on every process, and the
root decomposition is broadcast, so every process holds the same eigenpairs
and makes the same decision when a precondition fails.
Eigenvector matrices are redistributed like their input.

Two problems are solved:

- TDA:   A X^n = Ω^n X^n
- full:  C Z^n = (Ω^n)^2 Z^n  with  C = (A-B)^{1/2} (A+B) (A-B)^{1/2}
"""

from __future__ import annotations

import numpy as np
import scipy.linalg

from gwbse.excitation import reconstruct_amplitudes
from gwbse.fm import DistributedMatrix
from gwbse.logger import BSELogger, new_logger


def _eigh_global(a: np.ndarray, *, driver: str | None, label: str) -> tuple[np.ndarray, np.ndarray]:
    if not np.all(np.isfinite(a)):
        raise RuntimeError(f"Dense eigensolver failed for {label}: matrix contains non-finite entries.")
    try:
        w, v = scipy.linalg.eigh(a, lower=True, driver=driver, overwrite_a=True, check_finite=False)
    except np.linalg.LinAlgError as e:
        raise RuntimeError(f"Dense eigensolver failed for {label} (status: {e}).") from e
    return np.asarray(w, dtype=np.float64), np.asarray(v, dtype=np.float64)


def eigh(
    matrix: DistributedMatrix,
    *,
    driver: str | None = None,
) -> tuple[np.ndarray, DistributedMatrix]:
    """Eigen-decomposition of a symmetric distributed matrix (collective).

    Only the lower triangle is referenced.

    Returns
    -------
    eigvals : (n,) ascending, replicated on every process
    eigvec : DistributedMatrix, columns are eigenvectors
    """
    if matrix.nrow_global != matrix.ncol_global:
        raise ValueError(f"eigh needs a square matrix, got {matrix.shape}")
    label = matrix.name or "matrix"
    w, v = _eigh_global(matrix.to_global(), driver=driver, label=label)
    # one set of eigenvector phases for the whole grid
    w, v = matrix.grid.bcast((w, v))
    eigvec = DistributedMatrix.from_global(matrix.grid, v, name=f"{label}_eigvec")
    return w, eigvec


def matrix_power(
    matrix: DistributedMatrix,
    exponent: float,
    threshold: float = 0.0,
    *,
    driver: str | None = None,
) -> tuple[DistributedMatrix, np.ndarray, int]:
    """``matrix ** exponent`` through its eigen-decomposition (collective).

    Eigenvalues below ``threshold`` are treated as linearly dependent and left
    out; for negative exponents non-positive eigenvalues are always left out.

    Returns
    -------
    result : DistributedMatrix
    eigvals : (n,) all eigenvalues, ascending
    n_dependent : int
        Number of eigenvalues left out.
    """
    if matrix.nrow_global != matrix.ncol_global:
        raise ValueError(f"matrix_power needs a square matrix, got {matrix.shape}")
    label = matrix.name or "matrix"
    w, v = _eigh_global(matrix.to_global(), driver=driver, label=label)
    # one set of eigenvector phases for the whole grid
    w, v = matrix.grid.bcast((w, v))

    keep = w >= float(threshold)
    if float(exponent) < 0.0:
        keep &= w > 0.0
    n_dependent = int(w.size - np.count_nonzero(keep))

    v_keep = v[:, keep]
    powered = (v_keep * np.power(w[keep], float(exponent))[None, :]) @ v_keep.T
    result = DistributedMatrix.from_global(matrix.grid, powered, name=f"{label}^{exponent:g}")
    return result, w, n_dependent


def diagonalize_A(
    fm_a: DistributedMatrix,
    *,
    driver: str | None = None,
    log: BSELogger | None = None,
) -> tuple[np.ndarray, DistributedMatrix]:
    """Solve the BSE within the TDA, A X^n = Ω^n X^n.

    Returns the excitation energies Ω^n (Hartree, ascending) and the
    eigenvector matrix X (column n is X^n).
    """
    log = new_logger(verbose=log)
    log.info("Diagonalizing A (dimension %d).", fm_a.nrow_global)
    exc_ens, fm_eigvec = eigh(fm_a, driver=driver)
    log.debug("Diagonalized A")
    return exc_ens, fm_eigvec


def diagonalize_C(
    fm_c: DistributedMatrix,
    fm_sqrt_a_minus_b: DistributedMatrix,
    fm_inv_sqrt_a_minus_b: DistributedMatrix,
    *,
    driver: str | None = None,
    log: BSELogger | None = None,
) -> tuple[np.ndarray, DistributedMatrix]:
    """Solve C Z^n = (Ω^n)^2 Z^n and back-transform Z^n to X^n.

    ``fm_sqrt_a_minus_b`` and ``fm_inv_sqrt_a_minus_b`` are consumed (released).

    Returns
    -------
    exc_ens : (n,) excitation energies Ω^n (Hartree, ascending)
    fm_x : DistributedMatrix
        Column n holds X^n, the upper part of the (X, Y) eigenvector.
    """
    log = new_logger(verbose=log)
    log.info("Diagonalizing C (dimension %d).", fm_c.nrow_global)
    omega_sq, fm_eigvec = eigh(fm_c, driver=driver)
    if omega_sq[0] <= 0.0:
        raise RuntimeError(
            "Eigenvalues of C=(A-B)^0.5 (A+B) (A-B)^0.5 must be positive; "
            f"smallest eigenvalue is {omega_sq[0]:.6e}. The full BSE eigenproblem has no real solution."
        )
    exc_ens = np.sqrt(omega_sq)
    log.debug("Diagonalized C")

    fm_x = reconstruct_amplitudes(fm_eigvec, exc_ens, fm_sqrt_a_minus_b, fm_inv_sqrt_a_minus_b, log=log)
    return exc_ens, fm_x


__all__ = ["diagonalize_A", "diagonalize_C", "eigh", "matrix_power"]
