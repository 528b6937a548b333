"""BSE with bare-Coulomb RI factors reproduces CIS/TDHF from PySCF."""

from __future__ import annotations

import numpy as np
import pytest

pytest.importorskip("pyscf")


@pytest.fixture(scope="module")
def water_df_rhf():
    from pyscf import gto, scf

    mol = gto.M(
        atom="O 0 0 0; H 0 0.757 0.587; H 0 -0.757 0.587",
        basis="sto-3g",
        verbose=0,
    )
    mf = scf.RHF(mol).density_fit(auxbasis="weigend")
    mf.conv_tol = 1e-12
    mf.kernel()
    assert mf.converged
    return mf


def test_factors_shapes(water_df_rhf):
    from gwbse.frontend import ri_factors_from_scf

    f = ri_factors_from_scf(water_df_rhf)
    assert (f.homo, f.virtual, f.homo_irred) == (5, 2, 5)
    assert f.s_ia.shape == (f.dimen_ri, 10)
    assert f.s_bar_ij.shape == (f.dimen_ri, 25)
    assert f.s_ab.shape == (f.dimen_ri, 4)
    np.testing.assert_array_equal(f.s_bar_ia, f.s_ia)

    window = ri_factors_from_scf(water_df_rhf, homo=2, virtual=1)
    assert window.s_ia.shape == (window.dimen_ri, 2)
    np.testing.assert_allclose(window.energies, water_df_rhf.mo_energy[3:6])
    with pytest.raises(ValueError):
        ri_factors_from_scf(water_df_rhf, homo=6)


@pytest.mark.parametrize("singlet", [True, False])
def test_tda_matches_pyscf_cis(water_df_rhf, singlet):
    from pyscf import tdscf

    from gwbse import run_bse
    from gwbse.frontend import ri_factors_from_scf

    td = tdscf.TDA(water_df_rhf)
    td.singlet = singlet
    td.nstates = 4
    td.conv_tol = 1e-10
    td.kernel()

    res = run_bse(
        **ri_factors_from_scf(water_df_rhf).as_kwargs(),
        spin_config="singlet" if singlet else "triplet",
        mode="tda",
    )
    np.testing.assert_allclose(res.excitation_energies[:4], np.sort(td.e), atol=1e-6)


def test_full_matches_pyscf_tdhf(water_df_rhf):
    from pyscf import tdscf

    from gwbse import run_bse
    from gwbse.frontend import ri_factors_from_scf

    td = tdscf.TDHF(water_df_rhf)
    td.nstates = 4
    td.conv_tol = 1e-10
    td.kernel()

    res = run_bse(**ri_factors_from_scf(water_df_rhf).as_kwargs(), mode="full")
    np.testing.assert_allclose(res.excitation_energies[:4], np.sort(td.e), atol=1e-6)
