"""Interactive fallback for works no automatic source could provide."""

from .coordinator import InteractiveFallbackCoordinator, parse_sampled_url, sampling_prompt
from .types import (
    Capabilities,
    EnvironmentUnavailable,
    FallbackEnvironment,
    FallbackOutcome,
    FallbackState,
    StepResult,
    next_state,
)

__all__ = [
    "Capabilities",
    "EnvironmentUnavailable",
    "FallbackEnvironment",
    "FallbackOutcome",
    "FallbackState",
    "InteractiveFallbackCoordinator",
    "StepResult",
    "next_state",
    "parse_sampled_url",
    "sampling_prompt",
]
