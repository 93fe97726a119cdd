"""Coverage-feedback optimization loop and generation service."""

from testsmith.optimization.loop import OptimizationLoop
from testsmith.optimization.schemas import (
    BuildTarget,
    Feedback,
    GenerationAttempt,
    GenerationOutcome,
)
from testsmith.optimization.service import (
    TestGenerationService,
    build_service,
)

__all__ = [
    "BuildTarget",
    "Feedback",
    "GenerationAttempt",
    "GenerationOutcome",
    "OptimizationLoop",
    "TestGenerationService",
    "build_service",
]
