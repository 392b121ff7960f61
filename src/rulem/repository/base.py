"""Base class for repository sources."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ..models import PrepareResult


class Source(ABC):
    """A place rule files come from, resolved to a local directory."""

    @abstractmethod
    def prepare(self, logger: logging.Logger | None = None) -> PrepareResult:
        """Make the source ready for reading.

        Args:
            logger: Logger for progress messages; the module logger when omitted

        Returns:
            The resolved absolute local path and what was done to reach it

        Raises:
            RulemError: If the source cannot be prepared
        """
        ...
