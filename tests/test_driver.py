"""End-to-end tests of run_bse (TDA, full, both; serial and 4 ranks)."""

from __future__ import annotations

import io

import numpy as np
import pytest

from _bse_inputs import abba_reference, make_toy_bse, same_up_to_sign
from _threadcomm import run_spmd
from gwbse import BSEOptions, run_bse
from gwbse.fm import DistributedMatrix
from gwbse.grid import create_grid


def test_tda_matches_dense_eigenvalues():
    toy = make_toy_bse(homo=3, virtual=4, naux=8, seed=21)
    res = run_bse(**toy.inputs(), mode="tda", keep_amplitudes=True)
    w, v = np.linalg.eigh(toy.reference_A())
    np.testing.assert_allclose(res.excitation_energies, w, rtol=1e-10)
    assert same_up_to_sign(res.amplitudes, v, atol=1e-8)
    assert res.tda
    assert res.alpha == 2.0
    assert res.homo_irred == 3
    assert len(res.records) == 12
    assert {"t_create_A", "t_diag_A"} <= set(res.breakdown)


def test_full_matches_abba_problem():
    toy = make_toy_bse(homo=2, virtual=4, naux=6, seed=22)
    res = run_bse(**toy.inputs(), mode="full", spin_config="triplet", keep_amplitudes=True)
    omega, x = abba_reference(toy.reference_A(0.0), toy.reference_B(0.0))
    np.testing.assert_allclose(res.excitation_energies, omega, rtol=1e-9)
    assert same_up_to_sign(res.amplitudes, x, atol=1e-8)
    assert res.approximation == "full"
    assert res.spin_config == "triplet"
    assert {"t_create_B", "t_hermitian_form", "t_diag_C"} <= set(res.breakdown)


def test_both_modes_and_tda_upper_bound():
    toy = make_toy_bse(seed=23)
    tda, full = run_bse(**toy.inputs(), mode="both")
    assert tda.approximation == "TDA" and full.approximation == "full"
    # B couples positive and negative energies and lowers the first excitation
    assert full.excitation_energies[0] <= tda.excitation_energies[0] + 1e-12
    assert full.amplitudes is None


def test_records_follow_options():
    toy = make_toy_bse(seed=24)
    opts = BSEOptions(eps_x=0.5, num_print_exc=3)
    res = run_bse(**toy.inputs(), options=opts, homo_irred=10)
    assert [r.index for r in res.records] == [1, 2, 3]
    for rec in res.records:
        for tr in rec.transitions:
            assert abs(tr.amplitude) > 0.5
            assert 9 <= tr.occ <= 10
            assert 11 <= tr.virt <= 13
    res = run_bse(**toy.inputs(), options=opts, eps_x=0.0, num_print_exc=1)
    assert len(res.records) == 1
    assert res.eps_x == 0.0


def test_argument_errors():
    toy = make_toy_bse(seed=25)
    kwargs = toy.inputs()
    with pytest.raises(ValueError, match="mode"):
        run_bse(**kwargs, mode="rpa")
    kwargs.pop("s_bar_ia")
    with pytest.raises(ValueError, match="s_bar_ia"):
        run_bse(**kwargs, mode="full")
    with pytest.raises(ValueError, match="spin_config"):
        run_bse(**kwargs, spin_config="quintet")


def test_not_positive_definite_propagates():
    toy = make_toy_bse(seed=26)
    kwargs = toy.inputs()
    # a huge screened ia factor makes (A-B) indefinite
    kwargs["s_bar_ia"] = -200.0 * kwargs["s_ia"]
    with pytest.raises(RuntimeError, match="not positive definite"):
        run_bse(**kwargs, mode="full")


def test_print_results_writes_report():
    toy = make_toy_bse(seed=27)
    out = io.StringIO()
    run_bse(**toy.inputs(), mode="full", print_results=True, stdout=out, num_print_exc=2)
    text = out.getvalue()
    assert "Full Bethe Salpeter equation (BSE) (i.e. without TDA)" in text
    assert text.count("-full-") >= 2


def test_verbose_logging():
    toy = make_toy_bse(seed=28)
    out = io.StringIO()
    run_bse(**toy.inputs(), verbose=5, stdout=out)
    text = out.getvalue()
    assert " BSE| BSE driver: mode=tda, spin=singlet" in text
    assert " BSE|DEBUG| Filled A_iajb" in text


def test_distributed_inputs_reuse_their_grid():
    toy = make_toy_bse(seed=29)
    grid = create_grid(None, block_size=3)
    kwargs = toy.inputs()
    for key in ("s_ia", "s_bar_ij", "s_ab", "s_bar_ia"):
        kwargs[key] = DistributedMatrix.from_global(grid, kwargs[key])
    res = run_bse(**kwargs, mode="full")
    ref = run_bse(**toy.inputs(), mode="full")
    np.testing.assert_allclose(res.excitation_energies, ref.excitation_energies, rtol=1e-12)
    assert not kwargs["s_ia"].released


def test_four_ranks_match_serial():
    toy = make_toy_bse(homo=3, virtual=3, naux=5, seed=30)
    serial_tda, serial_full = run_bse(**toy.inputs(), mode="both", keep_amplitudes=True)

    def _rank(comm):
        grid = create_grid(comm, block_size=2)
        grid_w = create_grid(comm, nprow=1, block_size=3)
        return run_bse(**toy.inputs(), mode="both", grid=grid, grid_w=grid_w, keep_amplitudes=True)

    for tda, full in run_spmd(4, _rank):
        np.testing.assert_allclose(tda.excitation_energies, serial_tda.excitation_energies, rtol=1e-10)
        np.testing.assert_allclose(full.excitation_energies, serial_full.excitation_energies, rtol=1e-10)
        assert same_up_to_sign(tda.amplitudes, serial_tda.amplitudes, atol=1e-8)
        assert same_up_to_sign(full.amplitudes, serial_full.amplitudes, atol=1e-8)
        assert tda.breakdown["nprocs"] == 4
