"""Public package entrypoint for the libmem release builder."""

from .config import Settings
from .errors import (
    EnvironmentSetupError,
    OutputExistsError,
    ReleaseBuildError,
    ToolExecutionError,
    UnsupportedPlatformError,
    ValidationError,
)
from .matrix import MatrixExecutor
from .models import (
    BuildRequest,
    BuildVariant,
    MatrixContext,
    MatrixResult,
    Platform,
    ReleaseResult,
    VariantResult,
)
from .orchestrator import run_release_build
from .platforms import SUPPORTED_PLATFORMS, resolve_platform, variants_for

__all__ = [
    "SUPPORTED_PLATFORMS",
    "BuildRequest",
    "BuildVariant",
    "EnvironmentSetupError",
    "MatrixContext",
    "MatrixExecutor",
    "MatrixResult",
    "OutputExistsError",
    "Platform",
    "ReleaseBuildError",
    "ReleaseResult",
    "Settings",
    "ToolExecutionError",
    "UnsupportedPlatformError",
    "ValidationError",
    "VariantResult",
    "resolve_platform",
    "run_release_build",
    "variants_for",
]
