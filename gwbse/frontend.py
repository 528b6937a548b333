"""RI factors for the BSE from a PySCF mean-field object.

Without a GW/RPA step the screened factors equal the bare ones
(\\bar{B} = B); the BSE then reduces to TDHF (full) or CIS (TDA) on the
density-fitted Coulomb integrals, which is what :func:`ri_factors_from_scf`
produces.  It is meant for validation and small demonstrations; production
inputs come from a GW code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class RIFactors:
    """Inputs of :func:`gwbse.driver.run_bse` (global NumPy arrays)."""

    s_ia: np.ndarray  # (naux, homo*virtual)
    s_bar_ij: np.ndarray  # (naux, homo*homo)
    s_ab: np.ndarray  # (naux, virtual*virtual)
    s_bar_ia: np.ndarray  # (naux, homo*virtual)
    energies: np.ndarray  # (homo+virtual,), Hartree
    homo: int
    virtual: int
    homo_irred: int  # absolute 1-based label of the highest occupied MO

    @property
    def dimen_ri(self) -> int:
        return int(self.s_ia.shape[0])

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "s_ia": self.s_ia,
            "s_bar_ij": self.s_bar_ij,
            "s_ab": self.s_ab,
            "energies": self.energies,
            "homo": self.homo,
            "virtual": self.virtual,
            "s_bar_ia": self.s_bar_ia,
            "homo_irred": self.homo_irred,
        }


def _mf_auxbasis(mf: Any, auxbasis: str | None) -> str:
    if auxbasis is not None:
        return str(auxbasis)
    with_df = getattr(mf, "with_df", None)
    aux = getattr(with_df, "auxbasis", None) if with_df is not None else None
    return str(aux) if aux else "weigend"


def ri_factors_from_scf(
    mf: Any,
    *,
    auxbasis: str | None = None,
    homo: int | None = None,
    virtual: int | None = None,
) -> RIFactors:
    """Build B^P_pq = sum_mn L^P_mn C_mp C_nq for a closed-shell SCF.

    Parameters
    ----------
    mf : pyscf.scf.hf.RHF
        Converged restricted mean-field object.
    auxbasis : str, optional
        Auxiliary basis; defaults to the one of a density-fitted ``mf``, else
        ``"weigend"``.
    homo, virtual : int, optional
        Size of the occupied window (the highest ``homo`` occupied MOs) and of
        the virtual window (the lowest ``virtual`` virtual MOs). Default: all.
    """
    from pyscf import lib  # noqa: PLC0415
    from pyscf.df import incore  # noqa: PLC0415

    mol = mf.mol
    mo_coeff = np.asarray(mf.mo_coeff, dtype=np.float64)
    mo_energy = np.asarray(mf.mo_energy, dtype=np.float64)
    if mo_coeff.ndim != 2:
        raise ValueError("only restricted closed-shell references are supported (mf.mo_coeff must be 2D)")
    if int(mol.spin) != 0:
        raise ValueError(f"closed-shell reference required, got mol.spin={mol.spin}")

    nmo = mo_coeff.shape[1]
    nocc = int(mol.nelectron) // 2
    nvir = nmo - nocc
    homo = nocc if homo is None else int(homo)
    virtual = nvir if virtual is None else int(virtual)
    if not 1 <= homo <= nocc:
        raise ValueError(f"homo must be in [1, {nocc}], got {homo}")
    if not 1 <= virtual <= nvir:
        raise ValueError(f"virtual must be in [1, {nvir}], got {virtual}")

    cderi = incore.cholesky_eri(mol, auxbasis=_mf_auxbasis(mf, auxbasis), aosym="s2ij")
    l_ao = lib.unpack_tril(np.asarray(cderi, dtype=np.float64))
    naux = l_ao.shape[0]

    c_occ = mo_coeff[:, nocc - homo:nocc]
    c_vir = mo_coeff[:, nocc:nocc + virtual]
    b_ia = np.einsum("Pmn,mi,na->Pia", l_ao, c_occ, c_vir, optimize=True)
    b_ij = np.einsum("Pmn,mi,nj->Pij", l_ao, c_occ, c_occ, optimize=True)
    b_ab = np.einsum("Pmn,ma,nb->Pab", l_ao, c_vir, c_vir, optimize=True)

    s_ia = np.ascontiguousarray(b_ia.reshape(naux, homo * virtual))
    energies = np.concatenate([mo_energy[nocc - homo:nocc], mo_energy[nocc:nocc + virtual]])
    return RIFactors(
        s_ia=s_ia,
        s_bar_ij=np.ascontiguousarray(b_ij.reshape(naux, homo * homo)),
        s_ab=np.ascontiguousarray(b_ab.reshape(naux, virtual * virtual)),
        s_bar_ia=s_ia.copy(),
        energies=energies,
        homo=homo,
        virtual=virtual,
        homo_irred=nocc,
    )


__all__ = ["RIFactors", "ri_factors_from_scf"]
