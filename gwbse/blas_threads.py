from __future__ import annotations

import contextlib
from typing import Iterator

from threadpoolctl import threadpool_info, threadpool_limits


def blas_thread_counts() -> dict[str, int]:
    """Current thread count per loaded BLAS library (``{filepath: num_threads}``)."""
    out: dict[str, int] = {}
    for entry in threadpool_info():
        if entry.get("user_api") != "blas":
            continue
        out[str(entry.get("filepath", entry.get("internal_api", "?")))] = int(entry.get("num_threads", 0))
    return out


@contextlib.contextmanager
def blas_thread_limit(n: int | None) -> Iterator[None]:
    """Temporarily limit BLAS threads for this process.

    ``n=None`` leaves the current setting untouched. Only BLAS-style
    threadpools are restricted so OpenMP regions elsewhere keep their width.
    """

    if n is None:
        yield
        return

    n = int(n)
    if n < 1:
        raise ValueError("BLAS thread limit must be >= 1")

    with threadpool_limits(limits=n, user_api="blas"):
        yield


__all__ = ["blas_thread_counts", "blas_thread_limit"]
