"""gwbse: full-diagonalization Bethe-Salpeter solver for GW quasiparticles."""

from importlib.metadata import PackageNotFoundError, version as _dist_version

from gwbse.assemble import create_A, create_B
from gwbse.blas_threads import blas_thread_limit
from gwbse.config import BSEOptions
from gwbse.driver import run_bse
from gwbse.eigen import diagonalize_A, diagonalize_C
from gwbse.fm import DistributedMatrix, parallel_gemm
from gwbse.grid import ProcessGrid, create_grid
from gwbse.hermitian import create_hermitian_form
from gwbse.remap import IndexFactor, fm_general_add
from gwbse.report import format_report, print_report
from gwbse.result import BSEResult, ExcitationRecord, Transition

try:
    __version__ = _dist_version("gwbse")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Distributed matrices
    "DistributedMatrix",
    "IndexFactor",
    "ProcessGrid",
    "create_grid",
    "fm_general_add",
    "parallel_gemm",
    # BSE stages
    "create_A",
    "create_B",
    "create_hermitian_form",
    "diagonalize_A",
    "diagonalize_C",
    # High-level driver
    "BSEOptions",
    "BSEResult",
    "ExcitationRecord",
    "Transition",
    "blas_thread_limit",
    "format_report",
    "print_report",
    "run_bse",
]
