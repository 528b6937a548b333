from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from gwbse.constants import HARTREE_TO_EV


@dataclass(frozen=True)
class Transition:
    """Single-particle transition occ => virt contributing to an excitation.

    ``occ`` and ``virt`` are absolute 1-based MO labels (HOMO = ``homo_irred``).
    """

    occ: int
    virt: int
    amplitude: float


@dataclass(frozen=True)
class ExcitationRecord:
    """One BSE excitation and its dominant single-particle transitions."""

    index: int  # 1-based excitation number n
    energy: float  # Hartree
    spin_config: str
    approximation: str  # "TDA" or "full"
    transitions: tuple[Transition, ...] = ()

    @property
    def energy_ev(self) -> float:
        return float(self.energy) * HARTREE_TO_EV


@dataclass(frozen=True)
class BSEResult:
    """Result of a full-diagonalization BSE run (TDA or full)."""

    spin_config: str
    alpha: float
    approximation: str
    homo: int
    virtual: int
    homo_irred: int
    eps_x: float
    excitation_energies: np.ndarray  # (homo*virtual,), Hartree, ascending
    records: list[ExcitationRecord] = field(default_factory=list)
    amplitudes: np.ndarray | None = None  # (homo*virtual, homo*virtual) X, column n = X^n (optional)
    breakdown: dict[str, Any] = field(default_factory=dict)

    @property
    def excitation_energies_ev(self) -> np.ndarray:
        return np.asarray(self.excitation_energies, dtype=np.float64) * HARTREE_TO_EV

    @property
    def tda(self) -> bool:
        return self.approximation == "TDA"
