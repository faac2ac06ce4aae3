"""
Python Code Agent

Creates and edits Python artifacts. Besides create/update/revert it supports
``fix`` (the instruction carries the error output to repair) and ``explain``
(the model rewrites the code with explanatory comments and docstrings).

Generated code is syntax-checked with ``ast``; a failed parse is reported
as a warning in the tool result, never as a failure, since partial code is
still worth saving.
"""

from __future__ import annotations

import ast

from artifact_chat.agent_config import AgentType
from artifact_chat.artifacts import ArtifactKind

from .base import StreamingArtifactAgent, strip_code_fences


class PythonCodeAgent(StreamingArtifactAgent):
    agent_type = AgentType.PYTHON
    kind = ArtifactKind.CODE
    operations = ("create", "update", "revert", "fix", "explain")

    output_rules = (
        "Return only Python source code. Do not wrap it in Markdown code fences "
        "and do not add prose outside of comments."
    )
    default_templates = {
        "create": "Write Python code for the following request:\n{instruction}",
        "update": (
            "Here is the current code:\n\n{current_content}\n\n"
            "Modify it according to this instruction and return the complete "
            "updated code:\n{instruction}"
        ),
        "fix": (
            "The following code fails:\n\n{current_content}\n\n"
            "Error output:\n{error_info}\n\n"
            "Fix the code and return the complete corrected version."
        ),
        "explain": (
            "Add clear comments and docstrings explaining this code without "
            "changing its behavior. Focus on: {instruction}\n\n{current_content}"
        ),
    }

    def post_process(self, content: str) -> str:
        return strip_code_fences(content)

    def validate_content(self, content: str) -> list[str]:
        try:
            ast.parse(content)
        except SyntaxError as e:
            return [f"Syntax error on line {e.lineno}: {e.msg}"]
        return []
