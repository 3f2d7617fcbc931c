"""Headless executors driving the flow from the command line."""

from .flow import FlowExecutor


__all__ = ["FlowExecutor"]
