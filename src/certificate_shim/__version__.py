"""Version information for certificate_shim."""

__version__ = "0.1.0"
