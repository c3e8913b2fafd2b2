"""Declarative schema of test documents.

Defines immutable pydantic models describing plans, steps, requests,
assertions and environment inputs. The module specifies the structural
contract of a test document and is consumed by the execution engine.
"""

from .checks import Assertion
from .inputs import EnvironmentDefinition, InputDefinition
from .plans import HEADER_KEYS, Plan
from .requests import RequestSpec
from .steps import Retry, Step

__all__ = (
    'HEADER_KEYS',
    'Assertion',
    'EnvironmentDefinition',
    'InputDefinition',
    'Plan',
    'RequestSpec',
    'Retry',
    'Step',
)
