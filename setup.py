from __future__ import annotations

from setuptools import find_packages, setup

setup(
    name="gwbse",
    version="0.1.0",
    description="Full-diagonalization Bethe-Salpeter equation solver for GW quasiparticles",
    python_requires=">=3.10",
    packages=find_packages(include=["gwbse", "gwbse.*"]),
    install_requires=[
        "numpy>=1.22",
        "scipy>=1.8",
        "threadpoolctl>=3.0",
    ],
    extras_require={
        "mpi": ["mpi4py>=3.1"],
        "pyscf": ["pyscf>=2.1"],
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": ["gwbse-doctor=gwbse.cli.doctor:main"],
    },
)
