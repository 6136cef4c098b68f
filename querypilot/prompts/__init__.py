"""Prompt templates and loader."""

from querypilot.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
