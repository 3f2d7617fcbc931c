"""kbflash - build and flash keyboard firmware over mass-storage bootloaders."""

__version__ = "0.3.0"

__all__ = ["__version__"]
