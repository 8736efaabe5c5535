"""
Finite-Difference Engine
========================
Axisymmetric finite-volume discretisation of the heat equation.

Sub-packages:
    pre: Mesh, material model, formula bridge and heat sources.
    analysis: Thermal model (conductances, sources, losses) and fields.
    solvers: Explicit and Crank-Nicolson time integrators, SOR kernels.

Note: This package should be pure Python/NumPy/Numba and should NOT do any
threading or plotting.
"""
