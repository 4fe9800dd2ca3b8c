from .completion import CompletionOptions, CompletionProvider, PydanticAICompletionProvider
from .snapshot import (
    SnapshotProvider,
    StaticSnapshotProvider,
    compute_pipeline_health,
    generate_suggestions,
)

__all__ = [
    "CompletionOptions",
    "CompletionProvider",
    "PydanticAICompletionProvider",
    "SnapshotProvider",
    "StaticSnapshotProvider",
    "compute_pipeline_health",
    "generate_suggestions",
]
