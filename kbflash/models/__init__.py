"""Shared model base classes."""

from .base import KbflashBaseModel


__all__ = ["KbflashBaseModel"]
