"""Directory authentication and local account reconciliation."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("dirauth")
except PackageNotFoundError:
    # Package not installed, such as when running directly from a checkout.
    __version__ = "0.0.0"
