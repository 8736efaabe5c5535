"""Thermal model and field containers."""
