"""Adapters wrapping external tools behind kbflash protocols."""

from .docker_adapter import DockerAdapter, LoggerOutputMiddleware, create_docker_adapter


__all__ = ["DockerAdapter", "LoggerOutputMiddleware", "create_docker_adapter"]
