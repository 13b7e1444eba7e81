"""Generation capabilities: the provider-facing side of a job."""

from backend.generation.base import GenerationCapability, invoke_with_backoff, is_transient_error
from backend.generation.image import ReplicateImageGenerator
from backend.generation.text import AnthropicTextGenerator

__all__ = [
    "GenerationCapability",
    "invoke_with_backoff",
    "is_transient_error",
    "AnthropicTextGenerator",
    "ReplicateImageGenerator",
]
