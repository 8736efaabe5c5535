"""Mesh, materials, formula bridge and plasma heat sources."""
