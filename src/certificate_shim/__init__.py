"""certificate-shim: annotation-driven cert-manager Certificates for Ingress and Gateway."""

from certificate_shim.__version__ import __version__

__all__ = ["__version__"]
