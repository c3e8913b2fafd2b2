"""Test execution engine.

This package turns test documents into verdicts:

- `DocumentParser` validates YAML text into an executable `Plan`;
- `VariableResolver` substitutes `${...}` placeholders;
- `RequestExecutor` dispatches resolved requests over HTTP;
- `AssertionEvaluator` checks captured responses;
- `orchestrator.run` drives a whole document and returns a `FileVerdict`.

The orchestrator and the loader are imported from their modules,
since both depend on `testkit.context`.
"""

from .evaluator import AssertionEvaluator
from .executor import RequestExecutor
from .parser import DocumentParser
from .resolver import VariableResolver
from .verdicts import (
    AssertionResult,
    FileVerdict,
    RequestSnapshot,
    ResponseSnapshot,
    RunState,
    StepStatus,
    StepVerdict,
)

__all__ = (
    'AssertionEvaluator',
    'AssertionResult',
    'DocumentParser',
    'FileVerdict',
    'RequestExecutor',
    'RequestSnapshot',
    'ResponseSnapshot',
    'RunState',
    'StepStatus',
    'StepVerdict',
    'VariableResolver',
)
