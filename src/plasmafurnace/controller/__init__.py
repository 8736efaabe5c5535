"""
The CONTROLLER layer drives the computation: the finite-difference engine,
the simulation orchestrator and the background worker.
"""
