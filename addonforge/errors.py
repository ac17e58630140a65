"""
Engine Exceptions

Resolution and lookup failures abort only the run that raised them.
Validation problems are never raised; they live in ValidationResult.
"""


class AddonForgeError(Exception):
    """Base class for engine errors."""


class CatalogLookupError(AddonForgeError):
    """A catalog or project lookup could not be satisfied."""


class ResolutionError(AddonForgeError):
    """The expected dependency graph could not be resolved."""


class SharedResourceError(AddonForgeError):
    """The shared catalog/offering for a batch could not be provisioned."""


class ScenarioError(AddonForgeError):
    """A scenario file is malformed."""
