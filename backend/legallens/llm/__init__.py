"""
Generative AI Package

A thin gateway over Gemini (via langchain-google-genai) plus the prompt
templates it is driven with.

Public API::

    from legallens.llm import GeminiGateway, prompts

    gateway = GeminiGateway.from_settings(settings)
    summary = await gateway.analyze(prompts.analysis_prompt(text))
    answer  = await gateway.chat(prompts.chat_prompt(text, history, message))
"""

from legallens.llm import prompts
from legallens.llm.gateway import GeminiGateway, SamplingProfile

__all__ = ["GeminiGateway", "SamplingProfile", "prompts"]
