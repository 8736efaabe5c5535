"""
Plasma furnace thermal simulation engine.

Transient heat conduction with melting in an axisymmetric (r, z) furnace
heated by Gaussian plasma torches.
"""
