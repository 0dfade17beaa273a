"""Generator protocol: the interface all output generators implement."""

from __future__ import annotations

from typing import Protocol

from csinet.models.network import Network


class Generator(Protocol):
    """Protocol for output generators.

    Each generator takes the built networks, keyed by name, and renders
    them as text. Generators contain no derivation logic: every address,
    range and reservation they print is already on the model.
    """

    def __call__(self, networks: dict[str, Network]) -> str:
        """Render the networks."""
        ...
