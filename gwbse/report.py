"""Text report of a BSE run (``BSE|``-prefixed lines)."""

from __future__ import annotations

import sys
from typing import TextIO

from gwbse.constants import HARTREE_TO_EV
from gwbse.result import BSEResult

_RULE = "*" * 74
_REF = "in PRB 92,045209 (2015); http://dx.doi.org/10.1103/PhysRevB.92.045209 ."


def _line(text: str = "") -> str:
    return f" BSE|  {text}" if text else " BSE|"


def _banner(tda: bool) -> list[str]:
    if tda:
        return [
            _line(_RULE),
            _line("*   Bethe Salpeter equation (BSE) with Tamm Dancoff approximation (TDA)  *"),
            _line(_RULE),
            _line(),
            _line("The excitations are calculated by diagonalizing the BSE within the TDA:"),
            _line(),
            _line("                      A X^n = Ω^n X^n"),
            _line(),
            _line("i.e. in index notation:"),
            _line(),
            _line("sum_jb ( A_ia,jb   X_jb^n ) = Ω^n X_ia^n"),
            _line(),
            _line("prelim Ref.: Eq. (36) with B=0"),
            _line(_REF),
        ]
    return [
        _line(_RULE),
        _line("*          Full Bethe Salpeter equation (BSE) (i.e. without TDA)         *"),
        _line(_RULE),
        _line(),
        _line("The excitations are calculated by diagonalizing the BSE without the TDA:"),
        _line(),
        _line("               |A B| |X^n|       |1  0| |X^n|"),
        _line("               |B A| |Y^n| = Ω^n |0 -1| |Y^n|"),
        _line(),
        _line("i.e. in index notation:"),
        _line(),
        _line("  sum_jb ( A_ia,jb   X_jb^n + B_ia,jb   Y_jb^n ) = Ω^n X_ia^n"),
        _line("- sum_jb ( B_ia,jb   X_jb^n + A_ia,jb   Y_jb^n ) = Ω^n Y_ia^n"),
    ]


def format_report(result: BSEResult) -> list[str]:
    """Lines of the excitation report for ``result`` (no trailing newlines)."""
    tda = result.tda
    homo, virtual, homo_irred = int(result.homo), int(result.virtual), int(result.homo_irred)
    multiplet = str(result.spin_config).capitalize()
    info_approximation = " -TDA- " if tda else "-full-"

    lines = [_line(), _line()]
    lines += _banner(tda)
    lines += [
        _line(),
        _line(),
        _line(f"i,j:       occupied molecular orbitals, i.e. state in   [{homo_irred - homo + 1:4d},{homo_irred:4d}]"),
        _line(f"a,b:       unoccupied molecular orbitals, i.e. state in [{homo_irred + 1:4d},{homo_irred + virtual:4d}]"),
        _line("n:         Excitation index"),
        _line(),
        _line("A_ia,jb = (ε_a-ε_i) δ_ij δ_ab + α * v_ia,jb - W_ij,ab"),
    ]
    if not tda:
        lines += [
            _line("B_ia,jb = α * v_ia,jb - W_ib,aj"),
            _line(),
            _line("prelim Ref.: Eqs. (24-27),(30),(35)"),
            _line(_REF),
            _line(),
            _line("The BSE is solved for Ω^n and X_ia^n as a hermitian problem, e.g. Eq.(42)"),
            _line(_REF),
        ]
    lines += [
        _line(),
        _line("ε_...:     GW quasiparticle energy"),
        _line("δ_...:     Kronecker delta"),
        _line("α:         spin-dependent factor (Singlet/Triplet)"),
        _line("v_...:     Electron-hole exchange interaction"),
        _line("W_...:     Screened direct interaction"),
        _line(),
        _line(),
        _line(f"The spin-dependent factor is for the requested {multiplet} is α = {result.alpha:3.1f}"),
        _line(),
        _line(
            "Excitation energies from solving the BSE within the TDA:"
            if tda
            else "Excitation energies from solving the BSE without the TDA:"
        ),
        _line(),
        _line(f"    {'Excitation n':<15}{'Spin Config':<14}{'TDA/full BSE':<15}Excitation energy Ω^n (eV)"),
    ]
    for rec in result.records:
        lines.append(_line(f"{rec.index:16d}{'':7}{multiplet:<16}{info_approximation:<7}{rec.energy * HARTREE_TO_EV:22.4f}"))

    lines += [
        _line(),
        _line("Excitations are built up by the following single-particle transitions,"),
        _line(f"neglecting contributions where |X_ia^n| < {result.eps_x:5.2f} :"),
        _line(f"      -- Quick reminder: HOMO i ={homo_irred:5d} and LUMO a ={homo_irred + 1:5d} --"),
        _line(),
        _line(f"{'Excitation n':<18}i =>     a{'':15}{'TDA/full BSE':<21}|X_ia^n|"),
    ]
    for rec in result.records:
        lines.append(_line())
        for tr in rec.transitions:
            lines.append(
                _line(
                    f"{'':7}{rec.index:5d}{'':2}{tr.occ:5d} =>{tr.virt:6d}"
                    f"{'':20}{info_approximation:<7}{abs(tr.amplitude):17.4f}"
                )
            )
    lines += [_line(), _line()]
    return lines


def print_report(result: BSEResult, out: TextIO | None = None, *, is_root: bool = True) -> None:
    """Print :func:`format_report` on the root process."""
    if not is_root:
        return
    out = sys.stdout if out is None else out
    for line in format_report(result):
        print(line, file=out)


__all__ = ["format_report", "print_report"]
