"""Model-based test generation engine driving TLC and Apalache."""

__version__ = "0.3.0"

__all__ = ["__version__"]
