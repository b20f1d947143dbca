"""
Location Session.

Owns the single "current" LocationDescriptor of a browsing session. Writers
are explicit user selection and the one-shot geolocation bootstrap; every
write bumps `version` so the bootstrap can detect that it lost the race.
"""

import logging
from typing import Callable, List, Optional

from ...schemas.location import LocationDescriptor

logger = logging.getLogger(__name__)

SessionListener = Callable[[LocationDescriptor], None]


class LocationSession:
    def __init__(self, default: Optional[LocationDescriptor] = None) -> None:
        self._default = default or LocationDescriptor.global_()
        self._current = self._default
        self._is_default = True
        self._version = 0
        self._listeners: List[SessionListener] = []

    @property
    def current(self) -> LocationDescriptor:
        return self._current

    @property
    def is_default(self) -> bool:
        """True while no explicit selection (or bootstrap result) has replaced the default."""
        return self._is_default

    @property
    def version(self) -> int:
        return self._version

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def select(self, descriptor: LocationDescriptor) -> None:
        """Explicit user selection. Always wins."""
        logger.info("Location selected: %s %s", descriptor.type.value, descriptor.slug or descriptor.name)
        self._write(descriptor, is_default=False)

    def reset(self) -> None:
        """Explicit user action returning to the system default."""
        self._write(self._default, is_default=True)

    def apply_bootstrap(self, descriptor: LocationDescriptor, expected_version: int) -> bool:
        """
        Write the bootstrap result only if nothing else wrote since the
        bootstrap read `expected_version` and the session is still on its
        default. Returns whether the write happened.
        """
        if not self._is_default or self._version != expected_version:
            logger.info(
                "Bootstrap result %s discarded: session changed (version %d -> %d)",
                descriptor.name,
                expected_version,
                self._version,
            )
            return False
        self._write(descriptor, is_default=False)
        return True

    def _write(self, descriptor: LocationDescriptor, *, is_default: bool) -> None:
        self._current = descriptor
        self._is_default = is_default
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(descriptor)
            except Exception:
                logger.exception("Location session listener failed")
