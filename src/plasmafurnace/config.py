"""
Global Constants
================
This module serves as the central registry for physical constants and engine
defaults shared by the model and controller layers.

Exports:
    APP_VERSION (str): Installed package version (or a dev placeholder).
    STEFAN_BOLTZMANN (float): Stefan-Boltzmann constant in W/(m²·K⁴).
    DEFAULT_REFERENCE_TEMPERATURE (float): Zero of the enthalpy scale in K.
    DEFAULT_AMBIENT_TEMPERATURE (float): Ambient/initial temperature in K.
    PROPERTY_TEMPERATURE_RANGE (tuple): Range over which temperature-dependent
        properties are sampled for the enthalpy curve and the CFL estimate.
"""
from importlib.metadata import version, PackageNotFoundError

try:
    APP_VERSION: str = version("plasmafurnace")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

STEFAN_BOLTZMANN: float = 5.670374419e-8  # W/(m²·K⁴)

DEFAULT_REFERENCE_TEMPERATURE: float = 298.15  # K
DEFAULT_AMBIENT_TEMPERATURE: float = 298.15  # K

PROPERTY_TEMPERATURE_RANGE: tuple[float, float] = (200.0, 4000.0)  # K
PROPERTY_SAMPLES: int = 512

# Number of frames kept for playback when no storage interval is configured
DEFAULT_SNAPSHOT_COUNT: int = 100
