"""Service-layer infrastructure shared by billing and batch services."""

from rental_kernel.services.base import BaseService

__all__ = ["BaseService"]
