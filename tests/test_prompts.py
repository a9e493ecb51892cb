"""Unit tests for prompt template compilation."""

from __future__ import annotations

from transcript_editor.ai.prompts import PromptTemplate, build_messages, compile_template


class TestCompileTemplate:
    """Placeholders, conditional blocks, and whitespace cleanup."""

    def test_substitution(self):
        assert compile_template("Hello {{name}}!", {"name": "Anna"}) == "Hello Anna!"

    def test_missing_variable_is_empty(self):
        assert compile_template("Hello {{name}}!", {}) == "Hello !"

    def test_conditional_dropped_when_empty(self):
        template = "A{{#if notes}}\nNotes: {{notes}}{{/if}}\nB"
        assert compile_template(template, {"notes": ""}) == "A\nB"
        assert compile_template(template, {"notes": "x"}) == "A\nNotes: x\nB"

    def test_nested_conditionals(self):
        template = "{{#if a}}[{{#if b}}B{{/if}}]{{/if}}"
        assert compile_template(template, {"a": "yes"}) == "[]"
        assert compile_template(template, {"a": "yes", "b": "yes"}) == "[B]"
        assert compile_template(template, {"b": "yes"}) == ""

    def test_structured_values_are_json(self):
        assert compile_template("{{items}}", {"items": [1, 2]}) == "[1, 2]"
        assert compile_template("{{cfg}}", {"cfg": {"k": "ü"}}) == '{"k": "ü"}'

    def test_blank_lines_collapsed_and_stripped(self):
        assert compile_template("  a\n\n\n\nb  ", {}) == "a\n\nb"


class TestBuildMessages:
    """build_messages() yields a system and a user message."""

    def test_roles_and_content(self):
        template = PromptTemplate(
            id="t",
            name="Test",
            feature="speaker",
            system_prompt="You label {{what}}.",
            user_prompt_template="{{#if hint}}Hint: {{hint}}\n{{/if}}Segments:\n{{segments}}",
        )
        messages = build_messages(template, {"what": "speakers", "segments": "[1] hi"})
        assert messages == [
            {"role": "system", "content": "You label speakers."},
            {"role": "user", "content": "Segments:\n[1] hi"},
        ]
        assert template.is_built_in
