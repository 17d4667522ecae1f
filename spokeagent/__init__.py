"""Controllers that report Submariner gateway, connection and deployment status for a managed cluster."""

__version__ = "0.4.0"
__all__ = ["__version__"]