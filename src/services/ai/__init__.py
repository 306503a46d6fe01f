"""Model provider wiring for menu extraction."""

from .model_factory import get_multimodal_model, resolve_provider


__all__ = [
    "get_multimodal_model",
    "resolve_provider",
]
