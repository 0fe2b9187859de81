"""Field sales backend: geofenced visit tracking and order pricing."""

__version__ = "0.1.0"
