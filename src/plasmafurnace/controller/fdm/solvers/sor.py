from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numba as nb
import numpy as np
import scipy as sp
import scipy.sparse.linalg

if TYPE_CHECKING:
    import numpy.typing as npt

spsolve = sp.sparse.linalg.spsolve


class SorOrdering(StrEnum):
    LEXICOGRAPHIC = "lexicographic"
    RED_BLACK = "red_black"


@dataclass
class StencilSystem:
    """
    Five-point system a_P·T_P − Σ a_nb·T_nb = b on the (nr, nz) grid.

    a_w/a_e couple node (i, j) with (i − 1, j)/(i + 1, j), a_s/a_n with
    (i, j − 1)/(i, j + 1). Coefficients pointing outside the grid are zero.
    """
    a_p: npt.NDArray[np.float64]
    a_w: npt.NDArray[np.float64]
    a_e: npt.NDArray[np.float64]
    a_s: npt.NDArray[np.float64]
    a_n: npt.NDArray[np.float64]
    b: npt.NDArray[np.float64]

    @property
    def shape(self) -> tuple[int, int]:
        return self.a_p.shape

    @staticmethod
    def assemble(
        g_r: npt.NDArray[np.float64],
        g_z: npt.NDArray[np.float64],
        diagonal: npt.NDArray[np.float64],
        rhs: npt.NDArray[np.float64],
        theta: float,
        dirichlet_mask: npt.NDArray[np.bool_],
        dirichlet_values: npt.NDArray[np.float64],
    ) -> StencilSystem:
        """
        Build the system for an implicit conduction step.

        Args:
            g_r: Radial face conductances, shape (nr - 1, nz).
            g_z: Axial face conductances, shape (nr, nz - 1).
            diagonal: Storage term added to a_P (e.g. ρ·V·c/dt).
            rhs: Right-hand side b of free nodes.
            theta: Implicit weight of the conduction operator.
            dirichlet_mask: Nodes held at a fixed temperature.
            dirichlet_values: The fixed temperatures.
        """
        shape = diagonal.shape
        a_w = np.zeros(shape)
        a_e = np.zeros(shape)
        a_s = np.zeros(shape)
        a_n = np.zeros(shape)
        a_w[1:, :] = theta * g_r
        a_e[:-1, :] = theta * g_r
        a_s[:, 1:] = theta * g_z
        a_n[:, :-1] = theta * g_z
        a_p = diagonal + a_w + a_e + a_s + a_n
        b = np.array(rhs, dtype=np.float64)

        if dirichlet_mask.any():
            for a in (a_w, a_e, a_s, a_n):
                a[dirichlet_mask] = 0.0
            a_p[dirichlet_mask] = 1.0
            b[dirichlet_mask] = dirichlet_values[dirichlet_mask]

        return StencilSystem(a_p=a_p, a_w=a_w, a_e=a_e, a_s=a_s, a_n=a_n, b=b)

    def residual(self, temperature: npt.NDArray[np.float64]) -> float:
        """max |r_i / a_P,i| in Kelvin."""
        return float(
            _scaled_residual(temperature, self.a_p, self.a_w, self.a_e, self.a_s, self.a_n, self.b)
        )

    def to_sparse(self) -> sp.sparse.csr_matrix:
        """The system matrix in CSR form, node (i, j) at row i·nz + j."""
        nr, nz = self.shape
        index = np.arange(nr * nz).reshape(nr, nz)

        rows = [index.ravel()]
        cols = [index.ravel()]
        data = [self.a_p.ravel()]
        for coeff, offset in (
            (self.a_w, (-1, 0)),
            (self.a_e, (1, 0)),
            (self.a_s, (0, -1)),
            (self.a_n, (0, 1)),
        ):
            di, dj = offset
            src = index[max(0, -di):nr - max(0, di), max(0, -dj):nz - max(0, dj)]
            dst = index[max(0, di):nr + min(0, di), max(0, dj):nz + min(0, dj)]
            c = coeff[max(0, -di):nr - max(0, di), max(0, -dj):nz - max(0, dj)]
            rows.append(src.ravel())
            cols.append(dst.ravel())
            data.append(-c.ravel())

        return sp.sparse.coo_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
            shape=(nr * nz, nr * nz),
        ).tocsr()


@dataclass
class SorResult:
    solution: npt.NDArray[np.float64]
    iterations: int
    residual: float
    converged: bool


# ---- JIT'd SOR kernels ----

@nb.njit(cache=True, inline="always")
def _node_update(t, a_p, a_w, a_e, a_s, a_n, b, i, j, nr, nz):
    s = b[i, j]
    if i > 0:
        s += a_w[i, j] * t[i - 1, j]
    if i < nr - 1:
        s += a_e[i, j] * t[i + 1, j]
    if j > 0:
        s += a_s[i, j] * t[i, j - 1]
    if j < nz - 1:
        s += a_n[i, j] * t[i, j + 1]
    return s / a_p[i, j]


@nb.njit(cache=True, parallel=True)
def _scaled_residual(t, a_p, a_w, a_e, a_s, a_n, b) -> float:
    nr, nz = t.shape
    row_max = np.zeros(nr)
    for i in nb.prange(nr):
        m = 0.0
        for j in range(nz):
            r = abs(_node_update(t, a_p, a_w, a_e, a_s, a_n, b, i, j, nr, nz) - t[i, j])
            if r > m:
                m = r
        row_max[i] = m
    return row_max.max()


@nb.njit(cache=True)
def _sor_lexicographic(t, a_p, a_w, a_e, a_s, a_n, b, omega, tolerance, max_iterations):
    nr, nz = t.shape
    residual = _scaled_residual(t, a_p, a_w, a_e, a_s, a_n, b)
    iterations = 0
    while residual >= tolerance and iterations < max_iterations:
        for i in range(nr):
            for j in range(nz):
                t_gs = _node_update(t, a_p, a_w, a_e, a_s, a_n, b, i, j, nr, nz)
                t[i, j] += omega * (t_gs - t[i, j])
        iterations += 1
        residual = _scaled_residual(t, a_p, a_w, a_e, a_s, a_n, b)
    return iterations, residual


@nb.njit(cache=True, parallel=True)
def _red_black_sweep(t, a_p, a_w, a_e, a_s, a_n, b, omega):
    nr, nz = t.shape
    for color in range(2):
        # nodes of one colour only read nodes of the other colour
        for i in nb.prange(nr):
            for j in range((i + color) % 2, nz, 2):
                t_gs = _node_update(t, a_p, a_w, a_e, a_s, a_n, b, i, j, nr, nz)
                t[i, j] += omega * (t_gs - t[i, j])


@nb.njit(cache=True)
def _sor_red_black(t, a_p, a_w, a_e, a_s, a_n, b, omega, tolerance, max_iterations):
    residual = _scaled_residual(t, a_p, a_w, a_e, a_s, a_n, b)
    iterations = 0
    while residual >= tolerance and iterations < max_iterations:
        _red_black_sweep(t, a_p, a_w, a_e, a_s, a_n, b, omega)
        iterations += 1
        residual = _scaled_residual(t, a_p, a_w, a_e, a_s, a_n, b)
    return iterations, residual


def solve_sor(
    system: StencilSystem,
    initial_guess: npt.NDArray[np.float64],
    omega: float,
    tolerance: float,
    max_iterations: int,
    ordering: SorOrdering = SorOrdering.RED_BLACK,
) -> SorResult:
    """
    Solve the stencil system by successive over-relaxation.

    Each sweep updates T ← T + ω·(T_GS − T). Iteration stops once the scaled
    residual max |r_i / a_P,i| drops below ``tolerance`` or after
    ``max_iterations`` sweeps; the caller decides what non-convergence means.

    Args:
        system: Assembled five-point system.
        initial_guess: Starting field (not modified).
        omega: Relaxation factor, 1 <= ω < 2.
        tolerance: Residual threshold in Kelvin.
        max_iterations: Sweep cap.
        ordering: Update order of the sweep.

    Returns:
        SorResult with the solution and the convergence record.
    """
    t = np.array(initial_guess, dtype=np.float64)
    kernel = _sor_red_black if ordering == SorOrdering.RED_BLACK else _sor_lexicographic
    iterations, residual = kernel(
        t,
        system.a_p,
        system.a_w,
        system.a_e,
        system.a_s,
        system.a_n,
        system.b,
        float(omega),
        float(tolerance),
        int(max_iterations),
    )
    return SorResult(
        solution=t,
        iterations=int(iterations),
        residual=float(residual),
        converged=bool(residual < tolerance),
    )


def solve_direct(system: StencilSystem) -> SorResult:
    """Reference solve of the same system with a sparse direct factorisation."""
    nr, nz = system.shape
    t = np.asarray(spsolve(system.to_sparse(), system.b.ravel()), dtype=np.float64).reshape(nr, nz)
    return SorResult(solution=t, iterations=1, residual=system.residual(t), converged=True)
