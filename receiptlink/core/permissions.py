"""Permission gating for radio operations.

The permission set that makes the radio usable depends on the OS version:
before the modern threshold, classic Bluetooth access was gated on location;
from the threshold on, the nearby-devices permissions are required instead.
The tier is derived fresh on every query because grants can be revoked while
the process is running.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Protocol

from receiptlink.core.errors import PermissionDeniedError
from receiptlink.core.model import PermissionState, PermissionTier

MODERN_NEARBY_THRESHOLD = 31

ACCESS_FINE_LOCATION = "ACCESS_FINE_LOCATION"
BLUETOOTH_SCAN = "BLUETOOTH_SCAN"
BLUETOOTH_CONNECT = "BLUETOOTH_CONNECT"

TIER_PERMISSIONS: dict[PermissionTier, tuple[str, ...]] = {
    PermissionTier.LEGACY_LOCATION: (ACCESS_FINE_LOCATION,),
    PermissionTier.MODERN_NEARBY: (BLUETOOTH_SCAN, BLUETOOTH_CONNECT),
}

LOGGER = logging.getLogger(__name__)


def required_tier(os_version: int, modern_threshold: int = MODERN_NEARBY_THRESHOLD) -> PermissionTier:
    if os_version >= modern_threshold:
        return PermissionTier.MODERN_NEARBY
    return PermissionTier.LEGACY_LOCATION


def permissions_for(tier: PermissionTier) -> tuple[str, ...]:
    return TIER_PERMISSIONS[tier]


def combine_states(states: Iterable[PermissionState]) -> PermissionState:
    states = tuple(states)
    if all(state is PermissionState.GRANTED for state in states):
        return PermissionState.GRANTED
    if any(state is PermissionState.DENIED for state in states):
        return PermissionState.DENIED
    return PermissionState.UNKNOWN


class PermissionHost(Protocol):
    def os_version(self) -> int:
        ...

    def check(self, permission: str) -> PermissionState:
        ...

    def request(self, permissions: Sequence[str]) -> None:
        """Run the consent flow and return once the user has answered."""


class GrantListPermissionHost:
    """In-process permission host backed by explicit grant and deny lists.

    ``prompt`` receives the permissions being requested and returns whether the
    user consented. Without a prompt, requests leave undecided permissions
    undecided.
    """

    def __init__(
        self,
        os_version: int,
        *,
        granted: Iterable[str] = (),
        denied: Iterable[str] = (),
        prompt: Callable[[tuple[str, ...]], bool] | None = None,
    ) -> None:
        self._os_version = os_version
        self._granted = set(granted)
        self._denied = set(denied) - self._granted
        self._prompt = prompt

    def os_version(self) -> int:
        return self._os_version

    def check(self, permission: str) -> PermissionState:
        if permission in self._granted:
            return PermissionState.GRANTED
        if permission in self._denied:
            return PermissionState.DENIED
        return PermissionState.UNKNOWN

    def request(self, permissions: Sequence[str]) -> None:
        if self._prompt is None:
            return
        requested = tuple(permissions)
        if self._prompt(requested):
            self._granted.update(requested)
            self._denied.difference_update(requested)
        else:
            self._denied.update(requested)
            self._granted.difference_update(requested)

    def revoke(self, permission: str) -> None:
        self._granted.discard(permission)
        self._denied.add(permission)


class PermissionGate:
    def __init__(self, host: PermissionHost, *, modern_threshold: int = MODERN_NEARBY_THRESHOLD) -> None:
        self._host = host
        self._modern_threshold = modern_threshold

    def required_tier(self) -> PermissionTier:
        return required_tier(self._host.os_version(), self._modern_threshold)

    def is_usable(self, tier: PermissionTier | None = None) -> PermissionState:
        if tier is None:
            tier = self.required_tier()
        return combine_states(self._host.check(permission) for permission in permissions_for(tier))

    def request_and_recheck(self, tier: PermissionTier | None = None) -> PermissionState:
        if tier is None:
            tier = self.required_tier()
        missing = tuple(
            permission
            for permission in permissions_for(tier)
            if self._host.check(permission) is not PermissionState.GRANTED
        )
        if missing:
            LOGGER.info("Requesting %s permissions: %s", tier.value, ", ".join(missing))
            self._host.request(missing)
        state = self.is_usable(tier)
        LOGGER.debug("Permission state for %s after request: %s", tier.value, state.value)
        return state

    def ensure_granted(self) -> PermissionTier:
        tier = self.required_tier()
        state = self.is_usable(tier)
        if state is not PermissionState.GRANTED:
            needed = ", ".join(permissions_for(tier))
            raise PermissionDeniedError(
                f"Bluetooth permission is {state.value}; grant {needed} and retry."
            )
        return tier
