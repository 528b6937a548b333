"""Physical constants used by the BSE solver.

Units
-----
- Energy: Hartree (Eh) internally; electronvolt (eV) for display.

Notes
-----
The Hartree-to-eV factor is the CODATA 2018 value, the same one used by the
GW/RPA codes that typically produce the quasiparticle energies fed to this
package.
"""

from __future__ import annotations

# Energy conversion
HARTREE_TO_EV = 27.211386245988

__all__ = [
    "HARTREE_TO_EV",
]
