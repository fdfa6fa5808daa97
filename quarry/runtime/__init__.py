"""
Runtime Module

The generation orchestrator and the factory that wires components.
"""

from quarry.runtime.factory import (
    Components,
    build_components,
    create_embedding_provider,
    create_generation_backend,
    create_vector_store,
)
from quarry.runtime.orchestrator import (
    CompletionFlag,
    GenerationEvent,
    GenerationEventType,
    GenerationOrchestrator,
    GenerationRequest,
    GenerationResult,
    GenerationState,
)

__all__ = [
    "CompletionFlag",
    "Components",
    "GenerationEvent",
    "GenerationEventType",
    "GenerationOrchestrator",
    "GenerationRequest",
    "GenerationResult",
    "GenerationState",
    "build_components",
    "create_embedding_provider",
    "create_generation_backend",
    "create_vector_store",
]
