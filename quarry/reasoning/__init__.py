"""
Reasoning Module

Generation backends and derived Q/A generation.
"""

from quarry.reasoning.llm import (
    BaseLLMAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    ScriptedLLMAdapter,
    StubLLMAdapter,
)
from quarry.reasoning.qa import QAGenerator, parse_qa

__all__ = [
    "BaseLLMAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "QAGenerator",
    "ScriptedLLMAdapter",
    "StubLLMAdapter",
    "parse_qa",
]
