"""Target architectures for service images.

Kept in the domain layer so the image pipeline and the doctor command share one
mapping from manifest values to engine platform flags.
"""

from __future__ import annotations

from enum import Enum


class Architecture(str, Enum):
    """Architectures the control plane can schedule."""

    AMD64 = "amd64"
    ARM64 = "arm64"

    @classmethod
    def parse(cls, value: str) -> "Architecture | None":
        """Return the matching member, or None for unsupported values."""

        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    def platform(self) -> str:
        """Platform flag passed to `build --platform`."""

        return f"linux/{self.value}"
