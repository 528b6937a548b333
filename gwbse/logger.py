from __future__ import annotations

"""Verbosity-gated logging for the BSE pipeline.

Output follows the ``BSE|`` line prefix of the text report so that log lines
and report lines interleave cleanly. Only the root process of a grid writes.
"""

import sys
import time
from typing import Any, TextIO


class BSELogger:
    """Tiny logger adapter with the subset used by the BSE modules.

    Attributes
    ----------
    verbose : int
        Verbosity level.
    stdout : TextIO | None
        Output stream; ``None`` means ``sys.stdout`` at call time.
    debug_print : bool
        Emit ``BSE|DEBUG|`` messages regardless of ``verbose``.
    is_root : bool
        Only the root process writes.
    """

    QUIET = 0
    WARN = 2
    INFO = 4
    DEBUG = 5
    DEBUG1 = 6

    PREFIX = "BSE|"
    DEBUG_PREFIX = "BSE|DEBUG|"

    def __init__(
        self,
        verbose: int = QUIET,
        *,
        stdout: TextIO | None = None,
        debug_print: bool = False,
        is_root: bool = True,
    ):
        self.verbose = int(verbose)
        self.stdout = stdout
        self.debug_print = bool(debug_print)
        self.is_root = bool(is_root)

    @staticmethod
    def _fmt(msg: str, args: tuple[Any, ...]) -> str:
        if not args:
            return str(msg)
        try:
            return str(msg) % args
        except Exception:
            return f"{msg} {' '.join(str(x) for x in args)}"

    def _write(self, line: str) -> None:
        if not self.is_root:
            return
        out = self.stdout if self.stdout is not None else sys.stdout
        print(line, file=out)

    def write(self, line: str = "") -> None:
        """Unconditional (root-only) write, used by the report."""
        self._write(line)

    def debug(self, msg: str, *args: Any) -> None:
        if self.debug_print or self.verbose >= self.DEBUG:
            self._write(f" {self.DEBUG_PREFIX} {self._fmt(msg, args)}")

    def debug1(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.DEBUG1:
            self._write(f" {self.DEBUG_PREFIX} {self._fmt(msg, args)}")

    def info(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.INFO:
            self._write(f" {self.PREFIX} {self._fmt(msg, args)}")

    def warn(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.WARN:
            self._write(f" {self.PREFIX} WARNING: {self._fmt(msg, args)}")

    def timer(self, label: str, t0_cpu: float, t0_wall: float) -> tuple[float, float]:
        t1 = (time.process_time(), time.perf_counter())
        self.debug("%s: CPU %.2f sec, wall %.2f sec", label, t1[0] - t0_cpu, t1[1] - t0_wall)
        return t1


def new_logger(
    obj: Any | None = None,
    verbose: Any | None = None,
    *,
    stdout: TextIO | None = None,
    debug_print: bool | None = None,
    is_root: bool = True,
) -> BSELogger:
    """Return a :class:`BSELogger`, reusing ``verbose`` if it already is one."""
    if isinstance(verbose, BSELogger):
        return verbose
    if verbose is None:
        if obj is not None:
            verbose = getattr(obj, "verbose", BSELogger.QUIET)
        else:
            verbose = BSELogger.QUIET
    if debug_print is None:
        debug_print = bool(getattr(obj, "debug_print", False)) if obj is not None else False
    return BSELogger(int(verbose), stdout=stdout, debug_print=bool(debug_print), is_root=is_root)


__all__ = ["BSELogger", "new_logger"]
