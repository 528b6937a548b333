"""Construction of the BSE coupling matrices A and B.

    A_ia,jb = (ε_a - ε_i) δ_ij δ_ab + α v_ia,jb - W_ij,ab
    B_ia,jb = α v_ia,jb - W_ib,aj

with the RI contractions

    v_ia,jb = sum_P B^P_ia B^P_jb              (bare exchange)
    W_ij,ab = sum_P \\bar{B}^P_ij B^P_ab        (screened direct term)
    W_ib,aj = sum_P \\bar{B}^P_ib B^P_aj

and the spin factor α = 2 (singlet) or 0 (triplet).  RI factors are
distributed matrices with the RI index on the rows and a combined orbital-pair
index on the columns (``ia = i * virtual + a``, ``ij = i * homo + j``,
``ab = a * virtual + b``).  ε are quasiparticle energies, occupied first.
"""

from __future__ import annotations

from typing import Literal

import numpy as np

from gwbse.fm import DistributedMatrix, parallel_gemm
from gwbse.grid import ProcessGrid
from gwbse.logger import BSELogger, new_logger
from gwbse.remap import PERM_IBJA_TO_IAJB, PERM_IJAB_TO_IAJB, IndexFactor, fm_general_add

SpinConfig = Literal["singlet", "triplet"]

_SPIN_FACTORS = {"singlet": 2.0, "triplet": 0.0}


def normalize_spin_config(spin_config: str) -> str:
    key = str(spin_config).strip().lower()
    if key not in _SPIN_FACTORS:
        raise ValueError(f"spin_config must be 'singlet' or 'triplet', got {spin_config!r}")
    return key


def spin_factor(spin_config: str) -> float:
    """Prefactor α of the exchange term (2.0 for singlets, 0.0 for triplets)."""
    return _SPIN_FACTORS[normalize_spin_config(spin_config)]


def _check_ri_factor(fm: DistributedMatrix, dimen_ri: int, npair: int, label: str) -> None:
    if fm.shape != (int(dimen_ri), int(npair)):
        raise ValueError(f"{label} must have shape (dimen_RI, {npair}) = ({dimen_ri}, {npair}), got {fm.shape}")


def create_A(
    fm_mat_s_ia_bse: DistributedMatrix,
    fm_mat_s_bar_ij_bse: DistributedMatrix,
    fm_mat_s_ab_bse: DistributedMatrix,
    eigenval: np.ndarray,
    homo: int,
    virtual: int,
    dimen_ri: int,
    spin_config: SpinConfig | str = "singlet",
    *,
    grid_w: ProcessGrid | None = None,
    log: BSELogger | None = None,
) -> DistributedMatrix:
    """Build A_ia,jb = (ε_a-ε_i) δ_ij δ_ab + α v_ia,jb - W_ij,ab (collective).

    Parameters
    ----------
    fm_mat_s_ia_bse : (dimen_RI, homo*virtual)
        B^P_ia. A is created on the grid of this matrix.
    fm_mat_s_bar_ij_bse : (dimen_RI, homo*homo)
        Screened factors \\bar{B}^P_ij.
    fm_mat_s_ab_bse : (dimen_RI, virtual*virtual)
        B^P_ab.
    eigenval : (>= homo+virtual,)
        Quasiparticle energies, occupied first.
    grid_w : ProcessGrid, optional
        Grid for the (homo^2, virtual^2) intermediate W; defaults to the grid of
        ``fm_mat_s_ab_bse``.

    Returns
    -------
    fm_a : DistributedMatrix (homo*virtual, homo*virtual)
    """
    log = new_logger(verbose=log)
    homo, virtual, dimen_ri = int(homo), int(virtual), int(dimen_ri)
    if homo < 1 or virtual < 1:
        raise ValueError(f"homo and virtual must be >= 1, got homo={homo}, virtual={virtual}")
    _check_ri_factor(fm_mat_s_ia_bse, dimen_ri, homo * virtual, "S_ia")
    _check_ri_factor(fm_mat_s_bar_ij_bse, dimen_ri, homo * homo, "S_bar_ij")
    _check_ri_factor(fm_mat_s_ab_bse, dimen_ri, virtual * virtual, "S_ab")
    eigenval = np.asarray(eigenval, dtype=np.float64).ravel()
    if eigenval.size < homo + virtual:
        raise ValueError(f"need at least homo+virtual={homo + virtual} energies, got {eigenval.size}")

    alpha = spin_factor(spin_config)
    log.debug("Creating A")

    # A is initialized with α v_ia,jb and accumulates the other terms in place.
    fm_a = DistributedMatrix.zeros(fm_mat_s_ia_bse.grid, homo * virtual, homo * virtual, name="fm_A_iajb")
    parallel_gemm("T", "N", alpha, fm_mat_s_ia_bse, fm_mat_s_ia_bse, 0.0, fm_a)
    log.debug("Allocated A_iajb")

    if grid_w is None:
        grid_w = fm_mat_s_ab_bse.grid
    fm_w = DistributedMatrix.zeros(grid_w, homo * homo, virtual * virtual, name="fm_W_ijab")
    parallel_gemm("T", "N", 1.0, fm_mat_s_bar_ij_bse, fm_mat_s_ab_bse, 0.0, fm_w)
    log.debug("Allocated W_ijab")

    # -W_ij,ab -> A_ia,jb
    fm_general_add(
        fm_a,
        fm_w,
        -1.0,
        IndexFactor(homo, homo),
        IndexFactor(virtual, virtual),
        IndexFactor(homo, virtual),
        IndexFactor(homo, virtual),
        PERM_IJAB_TO_IAJB,
    )
    fm_w.release()
    del fm_w

    # (ε_a - ε_i) on the diagonal, ia = i * virtual + a
    eps_occ = eigenval[:homo]
    eps_virt = eigenval[homo:homo + virtual]
    fm_a.add_to_diagonal((eps_virt[None, :] - eps_occ[:, None]).ravel())

    log.debug("Filled A_iajb")
    return fm_a


def create_B(
    fm_mat_s_ia_bse: DistributedMatrix,
    fm_mat_s_bar_ia_bse: DistributedMatrix,
    homo: int,
    virtual: int,
    dimen_ri: int,
    spin_config: SpinConfig | str = "singlet",
    *,
    log: BSELogger | None = None,
) -> DistributedMatrix:
    """Build B_ia,jb = α v_ia,jb - W_ib,aj (collective).

    The screened product \\bar{B}^T B is indexed (ib, ja) internally and
    scattered to (ia, jb).  B carries no diagonal energy term.
    """
    log = new_logger(verbose=log)
    homo, virtual, dimen_ri = int(homo), int(virtual), int(dimen_ri)
    if homo < 1 or virtual < 1:
        raise ValueError(f"homo and virtual must be >= 1, got homo={homo}, virtual={virtual}")
    _check_ri_factor(fm_mat_s_ia_bse, dimen_ri, homo * virtual, "S_ia")
    _check_ri_factor(fm_mat_s_bar_ia_bse, dimen_ri, homo * virtual, "S_bar_ia")

    alpha = spin_factor(spin_config)
    log.debug("Creating B")

    grid = fm_mat_s_ia_bse.grid
    fm_b = DistributedMatrix.zeros(grid, homo * virtual, homo * virtual, name="fm_B_iajb")
    fm_w = DistributedMatrix.zeros(grid, homo * virtual, homo * virtual, name="fm_W_ibaj")
    log.debug("Allocated B_iajb")

    parallel_gemm("T", "N", alpha, fm_mat_s_ia_bse, fm_mat_s_ia_bse, 0.0, fm_b)
    parallel_gemm("T", "N", 1.0, fm_mat_s_bar_ia_bse, fm_mat_s_ia_bse, 0.0, fm_w)

    # -W_ib,ja -> B_ia,jb
    fm_general_add(
        fm_b,
        fm_w,
        -1.0,
        IndexFactor(homo, virtual),
        IndexFactor(homo, virtual),
        IndexFactor(homo, virtual),
        IndexFactor(homo, virtual),
        PERM_IBJA_TO_IAJB,
    )
    fm_w.release()

    log.debug("Filled B_iajb")
    return fm_b


__all__ = ["SpinConfig", "create_A", "create_B", "normalize_spin_config", "spin_factor"]
