"""Run options for the BSE driver.

Defaults can be overridden through ``GWBSE_*`` environment variables, which is
convenient on batch systems where the calling script is shared between jobs.
Explicit keyword arguments to :func:`gwbse.driver.run_bse` always win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

_EIGH_DRIVERS = ("ev", "evd", "evr", "evx")


def _bool_env(key: str, default: bool) -> bool:
    raw = os.environ.get(key, "").strip().lower()
    if raw == "":
        return bool(default)
    return raw not in ("0", "false", "no", "off")


def _int_env(key: str, default: int | None) -> int | None:
    raw = os.environ.get(key, "").strip()
    if raw == "":
        return default
    try:
        out = int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got: {raw!r}") from e
    if out < 0:
        raise ValueError(f"{key} must be >= 0, got: {out}")
    return out


def _float_env(key: str, default: float) -> float:
    raw = os.environ.get(key, "").strip()
    if raw == "":
        return float(default)
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be a float, got: {raw!r}") from e


@dataclass(frozen=True)
class BSEOptions:
    """Numerical and output options of a BSE run.

    Attributes
    ----------
    eps_x : float
        Amplitude threshold for reporting single-particle transitions
        (|X_ia^n| > eps_x).
    num_print_exc : int
        Maximum number of excitations to report.
    debug_print : bool
        Emit ``BSE|DEBUG|`` progress lines.
    eigh_driver : str | None
        LAPACK driver for :func:`scipy.linalg.eigh` (``None`` = SciPy default).
    blas_threads : int | None
        BLAS thread limit around dense kernels (``None`` = unchanged).
    block_size : int
        Block size of the block-cyclic distribution for grids created by the driver.
    verbose : int
        Logger verbosity.
    """

    eps_x: float = 0.1
    num_print_exc: int = 25
    debug_print: bool = False
    eigh_driver: str | None = None
    blas_threads: int | None = None
    block_size: int = 32
    verbose: int = 0

    def __post_init__(self) -> None:
        if float(self.eps_x) < 0.0:
            raise ValueError(f"eps_x must be >= 0, got {self.eps_x}")
        if int(self.num_print_exc) < 0:
            raise ValueError(f"num_print_exc must be >= 0, got {self.num_print_exc}")
        if self.eigh_driver is not None and str(self.eigh_driver) not in _EIGH_DRIVERS:
            raise ValueError(f"eigh_driver must be one of {_EIGH_DRIVERS} or None, got {self.eigh_driver!r}")
        if self.blas_threads is not None and int(self.blas_threads) < 1:
            raise ValueError(f"blas_threads must be >= 1, got {self.blas_threads}")
        if int(self.block_size) < 1:
            raise ValueError(f"block_size must be >= 1, got {self.block_size}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "BSEOptions":
        driver = os.environ.get("GWBSE_EIGH_DRIVER", "").strip().lower() or None
        blas_threads = _int_env("GWBSE_BLAS_THREADS", None)
        opts = cls(
            eps_x=_float_env("GWBSE_EPS_X", cls.eps_x),
            num_print_exc=int(_int_env("GWBSE_NUM_PRINT_EXC", cls.num_print_exc)),
            debug_print=_bool_env("GWBSE_DEBUG_PRINT", cls.debug_print),
            eigh_driver=driver,
            blas_threads=blas_threads if blas_threads else None,
            block_size=int(_int_env("GWBSE_BLOCK_SIZE", cls.block_size)),
            verbose=int(_int_env("GWBSE_VERBOSE", cls.verbose)),
        )
        return opts.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> "BSEOptions":
        """Return a copy with the non-``None`` entries of ``overrides`` applied."""
        clean = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(clean) - set(self.__dataclass_fields__)
        if unknown:
            raise ValueError(f"unknown BSE option(s): {sorted(unknown)}")
        if not clean:
            return self
        return replace(self, **clean)


def default_block_size() -> int:
    return int(_int_env("GWBSE_BLOCK_SIZE", BSEOptions.block_size) or BSEOptions.block_size)


__all__ = ["BSEOptions", "default_block_size"]
