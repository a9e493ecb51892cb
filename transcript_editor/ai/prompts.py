"""Prompt templates with {{variable}} placeholders.

Templates support plain substitution ({{name}}) and conditional blocks
({{#if name}}...{{/if}}) that are dropped when the variable is empty.
Missing variables compile to an empty string.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, Field

_IF_RE = re.compile(r"\{\{#if\s+(\w+)}}((?:(?!\{\{#if)[\s\S])*?)\{\{/if}}")
_VAR_RE = re.compile(r"\{\{(\w+)}}")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class PromptTemplate(BaseModel):
    """A system/user prompt pair for one feature."""

    id: str = Field(description="Stable template identifier")
    name: str = Field(description="Human-readable template name")
    feature: str = Field(description="Feature key the template belongs to")
    system_prompt: str = Field(description="System message content")
    user_prompt_template: str = Field(description="User message with {{placeholders}}")
    is_built_in: bool = Field(default=True, description="Shipped with the application")


def _is_truthy(value: Any) -> bool:
    return value not in (None, "", False) and value != [] and value != {}


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def compile_template(template: str, variables: dict[str, Any]) -> str:
    result = template
    previous = None
    while result != previous:
        previous = result
        result = _IF_RE.sub(
            lambda m: m.group(2) if _is_truthy(variables.get(m.group(1))) else "", result
        )
    result = _VAR_RE.sub(lambda m: _stringify(variables.get(m.group(1))), result)
    return _BLANK_LINES_RE.sub("\n\n", result).strip()


def build_messages(template: PromptTemplate, variables: dict[str, Any]) -> list[dict[str, str]]:
    """Compile a template into chat messages ready for a provider."""
    return [
        {"role": "system", "content": compile_template(template.system_prompt, variables)},
        {"role": "user", "content": compile_template(template.user_prompt_template, variables)},
    ]
