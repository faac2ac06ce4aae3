"""Mermaid diagram artifacts."""

from __future__ import annotations

from artifact_chat.agent_config import AgentType
from artifact_chat.artifacts import ArtifactKind

from .base import StreamingArtifactAgent, strip_code_fences

# Keywords a Mermaid diagram may start with
MERMAID_DIAGRAM_TYPES = (
    "graph",
    "flowchart",
    "sequenceDiagram",
    "classDiagram",
    "stateDiagram",
    "stateDiagram-v2",
    "erDiagram",
    "journey",
    "gantt",
    "pie",
    "quadrantChart",
    "requirementDiagram",
    "gitGraph",
    "mindmap",
    "timeline",
    "sankey-beta",
    "xychart-beta",
    "block-beta",
    "C4Context",
)


class MermaidDiagramAgent(StreamingArtifactAgent):
    agent_type = AgentType.MERMAID
    kind = ArtifactKind.DIAGRAM
    operations = ("create", "update", "revert")

    output_rules = (
        "Return only Mermaid diagram source. Do not wrap it in Markdown code "
        "fences and do not add any explanation."
    )
    default_templates = {
        "create": "Draw a Mermaid diagram for the following request:\n{instruction}",
        "update": (
            "Here is the current Mermaid diagram:\n\n{current_content}\n\n"
            "Change it according to this instruction and return the complete "
            "updated diagram:\n{instruction}"
        ),
    }

    def post_process(self, content: str) -> str:
        return strip_code_fences(content).strip()

    def validate_content(self, content: str) -> list[str]:
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("%%"):
                continue
            keyword = line.split()[0]
            if keyword in MERMAID_DIAGRAM_TYPES:
                return []
            return [f"Unrecognized Mermaid diagram type '{keyword}'"]
        return ["Diagram is empty"]
