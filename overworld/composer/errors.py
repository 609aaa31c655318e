"""Exceptions raised for structural and configuration problems.

Spatial shortfalls (no route, under-filled scatter, overlapping fallback
placement) are never raised; they come back as data on the results.
"""


class ComposerError(Exception):
    """Base class for every error the composer raises."""


class DDLError(ComposerError, ValueError):
    """Malformed or inconsistent world declaration."""


class UnknownBiomeError(ComposerError, KeyError):
    """Biome id not present in the biome table."""

    def __str__(self):
        return str(self.args[0]) if self.args else 'unknown biome'


class UnknownArchetypeError(ComposerError, KeyError):
    """Archetype id not present in the registry."""

    def __str__(self):
        return str(self.args[0]) if self.args else 'unknown archetype'


class ArchetypeLoadError(ComposerError):
    """A registered archetype's reference layout could not be read."""


class PhaseOrderError(ComposerError, RuntimeError):
    """A grid phase was entered out of the fixed composition order."""
