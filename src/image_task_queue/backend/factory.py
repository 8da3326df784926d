"""Factory for creating execution backends."""

from __future__ import annotations

import logging

from image_task_queue.backend.base import ExecutionBackend
from image_task_queue.backend.pollinations import PollinationsBackend
from image_task_queue.backend.simulated import SimulatedBackend
from image_task_queue.config import BackendSettings

logger = logging.getLogger(__name__)


class BackendFactory:
    """Factory for creating execution backend instances."""

    @staticmethod
    def create(settings: BackendSettings) -> ExecutionBackend:
        """Create a backend based on configuration.

        Args:
            settings: Backend configuration specifying the provider.

        Returns:
            Configured backend instance.

        Raises:
            ValueError: If the provider is not supported.
        """
        logger.info("Creating execution backend", extra={"provider": settings.provider})

        if settings.provider == "pollinations":
            return PollinationsBackend(settings)
        elif settings.provider == "simulated":
            return SimulatedBackend(settings)
        else:
            raise ValueError(f"Unsupported backend provider: {settings.provider}")
