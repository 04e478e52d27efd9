"""EOS standards package root."""

from eos_standards.exceptions import (
    DependencyCycleError,
    DependencyError,
    StandardsError,
    UnresolvedVariableError,
)

__all__ = [
    "__version__",
    "DependencyCycleError",
    "DependencyError",
    "StandardsError",
    "UnresolvedVariableError",
]

__version__ = "0.1.0"
