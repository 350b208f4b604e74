"""
Backend registry (name -> constructor class).

The pipeline picks a backend by name at build time; everything after that
goes through the EvaluatorConstructor interface.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from models.config import Config, NetDescriptor
from .base import EvaluatorConstructor, InputTransformerFactory
from .dnn import OpenCVCpuEvaluatorConstructor, OpenCVCudaEvaluatorConstructor


_REGISTRY: Dict[str, Type[EvaluatorConstructor]] = {
    "cpu": OpenCVCpuEvaluatorConstructor,
    "cuda": OpenCVCudaEvaluatorConstructor,
}


def available_backends() -> List[str]:
    return sorted(_REGISTRY.keys())


def create_constructor(
    backend: str,
    net_descriptor: NetDescriptor,
    transformer_factory: Optional[InputTransformerFactory] = None,
    **kwargs: Any,
) -> EvaluatorConstructor:
    """
    Factory: construct the evaluator constructor for a backend.

    Args:
      backend: backend name ('cpu' | 'cuda' | any registered name)
      net_descriptor: network the constructor's evaluators will load
      transformer_factory: overrides the backend's default input transformer

    Extra kwargs are passed to the constructor class (e.g. half_precision for cuda).
    """
    key = (backend or "").strip().lower()
    if key not in _REGISTRY:
        raise ValueError(f"Unknown backend '{backend}'. Available: {available_backends()}")
    return _REGISTRY[key](net_descriptor, transformer_factory, **kwargs)


def create_constructor_from_config(config: Config) -> EvaluatorConstructor:
    return create_constructor(config.backend, config.net)
