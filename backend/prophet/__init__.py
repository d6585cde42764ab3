"""Prophet: peer-to-peer prediction-market settlement and AI arbitration."""

__version__ = "0.1.0"
__author__ = "Prophet Team"

# Subpackages import config lazily; keep this module free of side effects
__all__ = ["__version__", "__author__"]
