"""
LLM Module

Contains all generation backend adapters.
"""

from quarry.reasoning.llm.base import BaseLLMAdapter
from quarry.reasoning.llm.ollama_adapter import OllamaAdapter
from quarry.reasoning.llm.openai_adapter import OpenAIAdapter
from quarry.reasoning.llm.stub_adapter import ScriptedLLMAdapter, StubLLMAdapter, StubResponse

__all__ = [
    "BaseLLMAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "ScriptedLLMAdapter",
    "StubLLMAdapter",
    "StubResponse",
]
