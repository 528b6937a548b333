from __future__ import annotations

import importlib
import platform
import sys


def _try_import(modname: str):
    try:
        return importlib.import_module(modname), None
    except Exception as e:  # pragma: no cover
        return None, e


def _version(mod) -> str:
    return str(getattr(mod, "__version__", "unknown"))


def main() -> None:
    print("gwbse environment check")
    print(f"- python: {sys.version.split()[0]}")
    print(f"- platform: {platform.platform()}")

    for modname in ("numpy", "scipy", "threadpoolctl"):
        mod, err = _try_import(modname)
        if err is None:
            print(f"- {modname}: OK ({_version(mod)})")
        else:
            print(f"- {modname}: MISSING ({type(err).__name__}: {err})")
            print("  hint: reinstall with `python -m pip install -e .`")

    from gwbse.blas_threads import blas_thread_counts  # noqa: PLC0415

    counts = blas_thread_counts()
    if counts:
        for path, nthreads in counts.items():
            print(f"- blas: {path} (threads={nthreads})")
    else:
        print("- blas: no BLAS threadpool detected")

    mpi, mpi_err = _try_import("mpi4py.MPI")
    if mpi_err is None:
        comm = mpi.COMM_WORLD
        print(f"- mpi4py: OK (size={comm.Get_size()}, library={mpi.Get_library_version().splitlines()[0]})")
    else:
        print(f"- mpi4py: MISSING ({type(mpi_err).__name__}: {mpi_err})")
        print("  hint: install with `python -m pip install -e '.[mpi]'` for multi-process grids")

    pyscf, pyscf_err = _try_import("pyscf")
    if pyscf_err is None:
        print(f"- pyscf: OK ({_version(pyscf)})")
    else:
        print(f"- pyscf: MISSING ({type(pyscf_err).__name__}: {pyscf_err})")
        print("  hint: install with `python -m pip install -e '.[pyscf]'` for gwbse.frontend")


if __name__ == "__main__":  # pragma: no cover
    main()
