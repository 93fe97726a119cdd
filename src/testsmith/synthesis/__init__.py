"""Test synthesis through an LLM model chain."""

from testsmith.synthesis.llm import LLMSynthesizer, strip_code_fences

__all__ = ["LLMSynthesizer", "strip_code_fences"]
