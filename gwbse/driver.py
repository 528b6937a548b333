"""Top-level BSE driver.

Provides ``run_bse()`` which takes RI factors and GW quasiparticle energies and
runs the full-diagonalization BSE within the TDA, without it (full ABBA), or
both.
"""

from __future__ import annotations

import time
from typing import Any, Literal, TextIO

import numpy as np

from gwbse.assemble import create_A, create_B, normalize_spin_config, spin_factor
from gwbse.blas_threads import blas_thread_limit
from gwbse.config import BSEOptions
from gwbse.eigen import diagonalize_A, diagonalize_C
from gwbse.excitation import build_records
from gwbse.fm import DistributedMatrix
from gwbse.grid import ProcessGrid, create_grid
from gwbse.hermitian import create_hermitian_form
from gwbse.logger import BSELogger, new_logger
from gwbse.report import format_report
from gwbse.result import BSEResult

_MODES = ("tda", "full", "both")


def _as_fm(x: Any, grid: ProcessGrid, name: str) -> DistributedMatrix:
    if isinstance(x, DistributedMatrix):
        return x
    return DistributedMatrix.from_global(grid, np.asarray(x, dtype=np.float64), name=name)


def _pick_grid(grid: ProcessGrid | None, inputs: tuple[Any, ...], block_size: int) -> ProcessGrid:
    if grid is not None:
        return grid
    for x in inputs:
        if isinstance(x, DistributedMatrix):
            return x.grid
    return create_grid(None, block_size=int(block_size))


def _finalize(
    exc_ens: np.ndarray,
    fm_x: DistributedMatrix,
    *,
    approximation: str,
    spin: str,
    homo: int,
    virtual: int,
    homo_irred: int,
    options: BSEOptions,
    keep_amplitudes: bool,
    breakdown: dict[str, Any],
    log: BSELogger,
    print_results: bool,
) -> BSEResult:
    records = build_records(
        fm_x,
        exc_ens,
        homo,
        virtual,
        homo_irred,
        spin_config=spin,
        approximation=approximation,
        eps_x=options.eps_x,
        num_print_exc=options.num_print_exc,
    )
    amplitudes = fm_x.to_global() if keep_amplitudes else None
    result = BSEResult(
        spin_config=spin,
        alpha=spin_factor(spin),
        approximation=approximation,
        homo=homo,
        virtual=virtual,
        homo_irred=homo_irred,
        eps_x=float(options.eps_x),
        excitation_energies=np.asarray(exc_ens, dtype=np.float64),
        records=records,
        amplitudes=amplitudes,
        breakdown=dict(breakdown),
    )
    if print_results:
        for line in format_report(result):
            log.write(line)
    return result


def run_bse(
    s_ia: Any,
    s_bar_ij: Any,
    s_ab: Any,
    energies: Any,
    homo: int,
    virtual: int,
    *,
    s_bar_ia: Any = None,
    spin_config: Literal["singlet", "triplet"] | str = "singlet",
    mode: Literal["tda", "full", "both"] | str = "tda",
    homo_irred: int | None = None,
    eps_x: float | None = None,
    num_print_exc: int | None = None,
    grid: ProcessGrid | None = None,
    grid_w: ProcessGrid | None = None,
    options: BSEOptions | None = None,
    keep_amplitudes: bool = False,
    print_results: bool = False,
    verbose: int | None = None,
    stdout: TextIO | None = None,
) -> BSEResult | tuple[BSEResult, BSEResult]:
    """Full-diagonalization BSE from RI factors and quasiparticle energies.

    Parameters
    ----------
    s_ia : (dimen_RI, homo*virtual) array or DistributedMatrix
        RI factors B^P_ia.
    s_bar_ij : (dimen_RI, homo*homo)
        Screened RI factors \\bar{B}^P_ij.
    s_ab : (dimen_RI, virtual*virtual)
        RI factors B^P_ab.
    energies : (>= homo+virtual,)
        Quasiparticle energies in Hartree, occupied first.
    homo, virtual : int
        Number of occupied / virtual orbitals in the BSE window.
    s_bar_ia : (dimen_RI, homo*virtual), optional
        Screened RI factors \\bar{B}^P_ia; required for ``mode`` "full"/"both".
    spin_config : str
        "singlet" (α=2) or "triplet" (α=0).
    mode : str
        "tda", "full" or "both".
    homo_irred : int, optional
        MO label of the HOMO used in the report (default: ``homo``).
    eps_x, num_print_exc : optional
        Override ``options.eps_x`` / ``options.num_print_exc``.
    grid, grid_w : ProcessGrid, optional
        Grid for NumPy inputs and the (homo*virtual)^2 matrices, and grid for
        the (homo^2, virtual^2) screened intermediate.  Default: the grid of
        the first distributed input, else a serial grid.
    options : BSEOptions, optional
        Defaults to :meth:`BSEOptions.from_env`.
    keep_amplitudes : bool
        Gather the full amplitude matrix X into ``BSEResult.amplitudes``.
    print_results : bool
        Print the excitation report on the root process.

    Returns
    -------
    BSEResult, or (tda_result, full_result) for ``mode="both"``.
    """
    mode_norm = str(mode).strip().lower()
    if mode_norm not in _MODES:
        raise ValueError(f"mode must be one of {_MODES}, got {mode!r}")
    spin = normalize_spin_config(spin_config)
    if mode_norm in ("full", "both") and s_bar_ia is None:
        raise ValueError(f"mode={mode_norm!r} requires s_bar_ia")

    if options is None:
        options = BSEOptions.from_env()
    options = options.with_overrides(eps_x=eps_x, num_print_exc=num_print_exc, verbose=verbose)

    homo, virtual = int(homo), int(virtual)
    homo_irred = homo if homo_irred is None else int(homo_irred)

    grid = _pick_grid(grid, (s_ia, s_bar_ij, s_ab, s_bar_ia), options.block_size)
    log = new_logger(
        verbose=options.verbose, stdout=stdout, debug_print=options.debug_print, is_root=grid.is_root
    )

    fm_s_ia = _as_fm(s_ia, grid, "fm_mat_S_ia_bse")
    fm_s_bar_ij = _as_fm(s_bar_ij, grid, "fm_mat_S_bar_ij_bse")
    fm_s_ab = _as_fm(s_ab, grid if grid_w is None else grid_w, "fm_mat_S_ab_bse")
    dimen_ri = fm_s_ia.nrow_global

    log.info("BSE driver: mode=%s, spin=%s", mode_norm, spin)
    log.info("  homo=%d, virtual=%d, dimen_RI=%d", homo, virtual, dimen_ri)

    breakdown: dict[str, Any] = {"dimen_ri": dimen_ri, "nprocs": grid.size}
    finalize_kw = dict(
        spin=spin,
        homo=homo,
        virtual=virtual,
        homo_irred=homo_irred,
        options=options,
        keep_amplitudes=bool(keep_amplitudes),
        log=log,
        print_results=bool(print_results),
    )
    results: list[BSEResult] = []

    with blas_thread_limit(options.blas_threads):
        t0 = time.perf_counter()
        fm_a = create_A(
            fm_s_ia, fm_s_bar_ij, fm_s_ab, energies, homo, virtual, dimen_ri, spin, grid_w=grid_w, log=log
        )
        breakdown["t_create_A"] = time.perf_counter() - t0

        if mode_norm in ("tda", "both"):
            t0 = time.perf_counter()
            exc_ens, fm_x = diagonalize_A(fm_a, driver=options.eigh_driver, log=log)
            breakdown["t_diag_A"] = time.perf_counter() - t0
            results.append(_finalize(exc_ens, fm_x, approximation="TDA", breakdown=breakdown, **finalize_kw))
            fm_x.release()

        if mode_norm in ("full", "both"):
            fm_s_bar_ia = _as_fm(s_bar_ia, grid, "fm_mat_S_bar_ia_bse")
            t0 = time.perf_counter()
            fm_b = create_B(fm_s_ia, fm_s_bar_ia, homo, virtual, dimen_ri, spin, log=log)
            breakdown["t_create_B"] = time.perf_counter() - t0

            t0 = time.perf_counter()
            fm_c, fm_sqrt_a_minus_b, fm_inv_sqrt_a_minus_b = create_hermitian_form(
                fm_a, fm_b, driver=options.eigh_driver, log=log
            )
            fm_a.release()
            fm_b.release()
            breakdown["t_hermitian_form"] = time.perf_counter() - t0

            t0 = time.perf_counter()
            exc_ens, fm_x = diagonalize_C(
                fm_c, fm_sqrt_a_minus_b, fm_inv_sqrt_a_minus_b, driver=options.eigh_driver, log=log
            )
            fm_c.release()
            breakdown["t_diag_C"] = time.perf_counter() - t0
            results.append(_finalize(exc_ens, fm_x, approximation="full", breakdown=breakdown, **finalize_kw))
            fm_x.release()
        else:
            fm_a.release()

    if mode_norm == "both":
        return results[0], results[1]
    return results[0]


__all__ = ["run_bse"]
