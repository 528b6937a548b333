from __future__ import annotations

"""Hermitian form of the full (ABBA) BSE eigenproblem.

    C = (A-B)^{1/2} (A+B) (A-B)^{1/2}                      (I)

cf. Eq. (A7) in F. Furche, J. Chem. Phys. 114, 5982 (2001).  The eigenvalues
of C are (Ω^n)^2.  (A-B)^{-1/2} comes from a single eigen-decomposition and
(A-B)^{1/2} = (A-B)^{-1/2} (A-B) is obtained by one more multiplication.  Both
roots are returned since they are needed to back-transform the eigenvectors
of C.
"""

import time

from gwbse.eigen import matrix_power
from gwbse.fm import DistributedMatrix, parallel_gemm
from gwbse.logger import BSELogger, new_logger


def create_hermitian_form(
    fm_a: DistributedMatrix,
    fm_b: DistributedMatrix,
    *,
    driver: str | None = None,
    log: BSELogger | None = None,
) -> tuple[DistributedMatrix, DistributedMatrix, DistributedMatrix]:
    """Build C and the square roots of (A-B) (collective).

    A and B are left untouched.

    Returns
    -------
    fm_c : C = (A-B)^0.5 (A+B) (A-B)^0.5
    fm_sqrt_a_minus_b : (A-B)^0.5
    fm_inv_sqrt_a_minus_b : (A-B)^-0.5

    Raises
    ------
    RuntimeError
        If (A-B) is not positive definite.
    """
    log = new_logger(verbose=log)
    if not fm_a.compatible_with(fm_b):
        raise ValueError(f"A and B must share shape and grid layout, got {fm_a.shape} and {fm_b.shape}")
    if fm_a.nrow_global != fm_a.ncol_global:
        raise ValueError(f"A must be square, got {fm_a.shape}")
    t0 = (time.process_time(), time.perf_counter())
    log.info("Diagonalizing aux. matrix with size of A.")

    fm_a_plus_b = fm_a.copy(name="fm_A_plus_B")
    fm_a_plus_b.scale_and_add(1.0, 1.0, fm_b)
    fm_a_minus_b = fm_a.copy(name="fm_A_minus_B")
    fm_a_minus_b.scale_and_add(1.0, -1.0, fm_b)
    log.debug("Created work arrays")

    # No quenching of eigenvectors: threshold 0.
    fm_inv_sqrt_a_minus_b, eigvals_ab_diff, _n_dependent = matrix_power(fm_a_minus_b, -0.5, 0.0, driver=driver)
    fm_inv_sqrt_a_minus_b.name = "fm_inv_sqrt_A_minus_B"
    if eigvals_ab_diff[0] <= 0.0:
        fm_inv_sqrt_a_minus_b.release()
        fm_a_plus_b.release()
        fm_a_minus_b.release()
        raise RuntimeError(
            "Matrix (A-B) is not positive definite. "
            "Hermitian diagonalization of full BSE matrix is ill-defined. "
            f"(smallest eigenvalue {eigvals_ab_diff[0]:.6e})"
        )

    n = fm_a.nrow_global
    grid = fm_a.grid
    fm_sqrt_a_minus_b = DistributedMatrix.zeros(grid, n, n, name="fm_sqrt_A_minus_B")
    parallel_gemm("N", "N", 1.0, fm_inv_sqrt_a_minus_b, fm_a_minus_b, 0.0, fm_sqrt_a_minus_b)
    fm_a_minus_b.release()

    # (A-B)^0.5 (A+B)
    fm_work_product = DistributedMatrix.zeros(grid, n, n, name="fm_work_product")
    parallel_gemm("N", "N", 1.0, fm_sqrt_a_minus_b, fm_a_plus_b, 0.0, fm_work_product)
    fm_a_plus_b.release()

    fm_c = DistributedMatrix.zeros(grid, n, n, name="fm_C")
    parallel_gemm("N", "N", 1.0, fm_work_product, fm_sqrt_a_minus_b, 0.0, fm_c)
    fm_work_product.release()

    log.debug("Filled C=(A-B)^0.5 (A+B) (A-B)^0.5")
    log.timer("create_hermitian_form", *t0)
    return fm_c, fm_sqrt_a_minus_b, fm_inv_sqrt_a_minus_b


__all__ = ["create_hermitian_form"]
