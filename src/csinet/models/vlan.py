"""VLAN ID registry for a single allocation run."""

from __future__ import annotations

from csinet.constraints.errors import (
    VLANInUseError,
    VLANOutOfRangeError,
    VLANRangeError,
    VLANsInUseError,
)

MIN_VLAN = 0
MAX_VLAN = 4095
UNTAGGED_VLAN = 0


def _check(vlan_id: int) -> None:
    if not MIN_VLAN <= vlan_id <= MAX_VLAN:
        raise VLANOutOfRangeError()


def _check_range(start: int, end: int) -> None:
    if start > end:
        raise VLANRangeError()
    _check(start)
    _check(end)


class VLANRegistry:
    """Tracks which of the 4096 VLAN IDs are in use.

    VLAN 0 means untagged: allocating it always succeeds and it is
    never recorded.

    >>> vlans = VLANRegistry()
    >>> vlans.allocate(2)
    >>> vlans.is_allocated(2)
    True
    >>> vlans.free(2)
    >>> vlans.is_allocated(2)
    False
    """

    def __init__(self) -> None:
        self._table = [False] * (MAX_VLAN + 1)

    def allocate(self, vlan_id: int) -> None:
        _check(vlan_id)
        if vlan_id == UNTAGGED_VLAN:
            return
        if self._table[vlan_id]:
            raise VLANInUseError()
        self._table[vlan_id] = True

    def reserve(self, vlan_id: int) -> bool:
        """Allocate unless already allocated. Returns True if newly allocated."""
        _check(vlan_id)
        if vlan_id == UNTAGGED_VLAN or self._table[vlan_id]:
            return False
        self._table[vlan_id] = True
        return True

    def free(self, vlan_id: int) -> None:
        _check(vlan_id)
        self._table[vlan_id] = False

    def is_allocated(self, vlan_id: int) -> bool:
        """Report whether a VLAN is in use.

        Out-of-range IDs raise VLANOutOfRangeError, whose ``allocated``
        attribute is True.
        """
        _check(vlan_id)
        return self._table[vlan_id]

    def allocate_range(self, start: int, end: int) -> None:
        """Allocate start..end inclusive, or nothing at all.

        Raises VLANsInUseError listing every conflicting ID.
        """
        _check_range(start, end)
        used = [v for v in range(start, end + 1) if self._table[v]]
        if used:
            raise VLANsInUseError(used)
        for vlan_id in range(max(start, UNTAGGED_VLAN + 1), end + 1):
            self._table[vlan_id] = True

    def free_range(self, start: int, end: int) -> None:
        _check_range(start, end)
        for vlan_id in range(start, end + 1):
            self._table[vlan_id] = False

    def allocated(self) -> list[int]:
        """Return allocated VLAN IDs in ascending order."""
        return [v for v, used in enumerate(self._table) if used]

    def __contains__(self, vlan_id: int) -> bool:
        return MIN_VLAN <= vlan_id <= MAX_VLAN and self._table[vlan_id]

    def __len__(self) -> int:
        return sum(self._table)

    def __repr__(self) -> str:
        return f"VLANRegistry(allocated={self.allocated()})"
