"""Time integrators and linear solvers."""
