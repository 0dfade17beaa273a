"""Exception types raised by the library, and structured constraint violations."""

from __future__ import annotations

import enum
from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class IPAMError(ValueError):
    """Base class for every error raised by csinet."""


class InvalidInputError(IPAMError):
    """A CIDR, address, mask or identifier could not be used as given."""


class AllocationError(IPAMError):
    """A subnet could not be carved out of its parent network."""


class AddressExhaustedError(AllocationError):
    """No free addresses or blocks remain for the request."""


class SubnetNotFoundError(IPAMError):
    """No subnet with the requested name exists in the network."""


class DuplicateSubnetError(IPAMError):
    """More than one subnet carries the requested name."""


class DuplicateReservationError(IPAMError):
    """An address is already reserved under another name."""


class BuildError(IPAMError):
    """A network could not be built from its layout."""


class VLANError(IPAMError):
    """Base class for VLAN registry errors."""


class VLANOutOfRangeError(VLANError):
    """VLAN ID outside 0-4095.

    ``allocated`` is always True: an invalid ID is never available.
    """

    allocated = True

    def __init__(self, message: str = "VLAN out of range") -> None:
        super().__init__(message)


class VLANInUseError(VLANError):
    def __init__(self, message: str = "VLAN already used") -> None:
        super().__init__(message)


class VLANRangeError(VLANError):
    def __init__(
        self, message: str = "VLAN range is bad - start is larger than end",
    ) -> None:
        super().__init__(message)


class VLANsInUseError(VLANError):
    """Some VLANs in a requested range are already allocated.

    Attributes:
        vlans: The conflicting VLAN IDs, ascending.
    """

    def __init__(self, vlans: list[int]) -> None:
        self.vlans = sorted(vlans)
        super().__init__(f"VLANs already used: {self.vlans}")


# ---------------------------------------------------------------------------
# Constraint violations
# ---------------------------------------------------------------------------

class Severity(enum.Enum):
    """Constraint violation severity."""

    ERROR = "error"      # Refuse to write output
    WARNING = "warning"  # Continue + report


@dataclass(frozen=True)
class ConstraintViolation:
    """A single constraint violation with context.

    Attributes:
        severity: Whether this should stop generation or just warn.
        code: Machine-readable violation code (e.g. 'subnet_overlap').
        message: Human-readable description of the violation.
        network: Name of the network the violation was found in.
        subnet: Optional subnet name within that network.
    """

    severity: Severity
    code: str
    message: str
    network: str = ""
    subnet: str = ""

    @property
    def location(self) -> str:
        if self.network and self.subnet:
            return f"{self.network}/{self.subnet}"
        return self.network or self.subnet

    def __str__(self) -> str:
        prefix = self.severity.value.upper()
        loc = f" [{self.location}]" if self.location else ""
        return f"{prefix}{loc}: {self.message}"


@dataclass
class ValidationResult:
    """Aggregated result of running constraints.

    Collects all violations and provides summary methods.
    """

    violations: list[ConstraintViolation]

    def __init__(self) -> None:
        self.violations = []

    def add(self, violation: ConstraintViolation) -> None:
        self.violations.append(violation)

    def extend(self, other: ValidationResult) -> None:
        self.violations.extend(other.violations)

    @property
    def errors(self) -> list[ConstraintViolation]:
        return [v for v in self.violations if v.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ConstraintViolation]:
        return [v for v in self.violations if v.severity == Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return any(v.severity == Severity.ERROR for v in self.violations)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def report(self) -> str:
        """Generate a human-readable report of all violations."""
        if not self.violations:
            return "No violations found."

        lines = []
        errors = self.errors
        warnings = self.warnings
        if errors:
            lines.append(f"{len(errors)} error(s):")
            for v in errors:
                lines.append(f"  {v}")
        if warnings:
            lines.append(f"{len(warnings)} warning(s):")
            for v in warnings:
                lines.append(f"  {v}")
        return "\n".join(lines)
