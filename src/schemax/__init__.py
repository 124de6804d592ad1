"""schemax - Validation rule compilation and suppression engine.

schemax compiles declarative business-rule sets into executable validation
stylesheets at runtime, layers custom assertions into them, and filters the
resulting findings through named, inheritable suppression profiles.
"""

__version__ = "0.1.0"
__description__ = "Validation rule compilation and suppression engine"

from schemax.config import SchemaxConfig, load_config
from schemax.errors import (
    CacheComputeError,
    CompilationError,
    InjectionError,
    PatternError,
    ResolutionError,
    SchemaxError,
    SubsystemReloadError,
)
from schemax.service import ValidationEngine

__all__ = [
    "__version__",
    "__description__",
    "CacheComputeError",
    "CompilationError",
    "InjectionError",
    "PatternError",
    "ResolutionError",
    "SchemaxError",
    "SchemaxConfig",
    "SubsystemReloadError",
    "ValidationEngine",
    "load_config",
]
