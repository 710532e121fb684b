"""mohaa-pilot — scripted automation and testing for OpenMoHAA on Linux."""

__version__ = "0.1.0"
