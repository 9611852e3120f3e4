"""
Prompt templates for the judgement service.

Rules:
- Never hardcode prompts in Python
- Prompts are versioned by filename
- Prompts must be editable without code changes
"""

from evidence_engine.prompts.loader import load_prompt, render_prompt

__all__ = ["load_prompt", "render_prompt"]
