"""
Evaluator error taxonomy.

Configuration errors are fatal at construction/configure time, contract
violations are caller programming errors, resource exhaustion is reported
without retry, and evaluation errors abort the whole batch.
"""

from __future__ import annotations


class EvaluatorError(Exception):
    """Base class for all evaluator errors."""


class ConfigurationError(EvaluatorError, ValueError):
    """Missing bindings, unreadable network artifacts or invalid limits."""


class ContractViolation(EvaluatorError, ValueError):
    """The caller broke the evaluate/buffer contract."""


class BufferReleasedError(ContractViolation):
    """A buffer was used or released after it had already been released."""


class ResourceExhaustedError(EvaluatorError):
    """Buffer or device memory could not be allocated."""


class EvaluationError(EvaluatorError):
    """The forward pass failed; no output of the batch is valid."""
