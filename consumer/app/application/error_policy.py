"""Global propagation switch shared by every consumer component."""
from __future__ import annotations

from typing import Any

from loguru import logger

from consumer.app.core import SERVICE_NAME
from consumer.app.domain.errors import EventsError


class ErrorPolicy:
    """
    Decides whether a failed operation raises or is only reported.

    throw_error=True: report() raises the given error at the call site.
    throw_error=False: report() logs a warning and returns; the caller resolves
    with its "nothing happened" value.
    """

    def __init__(self, throw_error: bool) -> None:
        self._throw_error = bool(throw_error)

    @property
    def throw_error(self) -> bool:
        return self._throw_error

    def report(self, error: EventsError, event: str, **kwargs: Any) -> None:
        logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("{}", error)
        if self._throw_error:
            raise error
