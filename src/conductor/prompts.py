"""Role-based prompt construction.

Builds an XML-sectioned prompt for a specialist role (coder, QA, analyst...)
and turns it into a ProviderRequest whose model and sampling settings come
from a role-to-model mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from conductor.errors import ContextError
from conductor.providers.models import ProviderRequest

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from conductor.providers.models import Tool

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Specialist personas a prompt can be built for."""

    CODER = "coder"
    QA = "qa"
    PROJECT_MANAGER = "project_manager"
    CPO = "cpo"
    UI_UX = "ui_ux"
    SUMMARIZER = "summarizer"
    REWRITER = "rewriter"
    ANALYST = "analyst"
    CUSTOM = "custom"


_DESCRIPTIONS: dict[Role, str] = {
    Role.CODER: (
        "You are an expert software developer with deep knowledge of clean code, "
        "design patterns and software architecture. You write efficient, "
        "maintainable code that follows established conventions."
    ),
    Role.QA: (
        "You are a quality assurance specialist experienced in test design and "
        "defect identification. You write test plans and test cases that protect "
        "software quality."
    ),
    Role.PROJECT_MANAGER: (
        "You are a project manager skilled at coordinating tasks, allocating "
        "resources and managing timelines. You turn large initiatives into clear, "
        "actionable plans."
    ),
    Role.CPO: (
        "You are a Chief Product Officer focused on product strategy, market "
        "analysis and feature prioritization, aligning product work with business "
        "goals and user needs."
    ),
    Role.UI_UX: (
        "You are a UI/UX designer who creates intuitive, accessible interfaces "
        "grounded in interaction patterns and user experience principles."
    ),
    Role.SUMMARIZER: (
        "You write concise, accurate summaries that capture the essence of complex "
        "material and communicate the key points clearly."
    ),
    Role.REWRITER: (
        "You are an editor who adapts text to a requested tone, style and audience "
        "while preserving its core message."
    ),
    Role.ANALYST: (
        "You are an analyst who finds patterns, trends and insights in information "
        "and presents actionable conclusions."
    ),
}

_CUSTOM_FALLBACK = (
    "You are an expert professional who approaches problems systematically and "
    "provides high-quality, actionable solutions."
)


def role_description(role: Role, role_args: Mapping[str, Any] | None = None) -> str:
    """Persona text for *role*; ``custom`` takes it from ``role_args["role"]``."""
    args = role_args or {}
    if role is Role.CUSTOM:
        return str(args.get("role") or _CUSTOM_FALLBACK)
    return _DESCRIPTIONS[role]


def role_instructions(
    role: Role, role_args: Mapping[str, Any] | None = None
) -> list[str]:
    """Ordered working instructions for *role*."""
    args = role_args or {}
    if role is Role.CODER:
        language = args.get("language") or "the appropriate programming language"
        return [
            "First, analyze the problem in <thinking> tags",
            "Break down your approach and identify the key components",
            "Write your solution in <solution> tags",
            "Keep the code efficient, clean and documented",
            f"Follow the conventions of {language}",
            "Include tests for your solution"
            if args.get("tests")
            else "Keep the design testable",
        ]
    if role is Role.QA:
        return [
            "First, analyze the testing requirements in <thinking> tags",
            "Identify key scenarios and edge cases",
            "Write a test plan in <test_plan> tags",
            "List detailed test cases in <test_cases> tags",
            "Suggest tools and methods in <recommendations> tags",
            "Prioritize tests by importance and risk",
        ]
    if role is Role.PROJECT_MANAGER:
        return [
            "First, analyze the project requirements in <thinking> tags",
            "Break the project into phases and tasks in <breakdown> tags",
            "Lay out a timeline with milestones in <timeline> tags",
            "Identify resource requirements in <resources> tags",
            "Highlight risks and mitigations in <risks> tags",
            "Give next steps in <recommendations> tags",
        ]
    if role is Role.CPO:
        return [
            "First, analyze the product requirements in <thinking> tags",
            "Weigh market positioning, user needs and business goals",
            "Outline the product strategy in <strategy> tags",
            "Draft a feature roadmap in <roadmap> tags",
            "Prioritize features in <prioritization> tags",
            "Define success metrics in <metrics> tags",
        ]
    if role is Role.UI_UX:
        return [
            "First, analyze the design requirements in <thinking> tags",
            "Account for accessibility and platform constraints",
            "Outline the design approach in <approach> tags",
            "Describe components and interactions in <design> tags",
            "Explain user flows in <flows> tags",
            "Give implementation advice in <recommendations> tags",
        ]
    if role is Role.SUMMARIZER:
        fmt = args.get("format") or "an appropriate format"
        return [
            "First, identify the key points in <thinking> tags",
            "Focus on the most important information",
            "Write the summary in <summary> tags",
            "Stay accurate while dropping non-essential detail",
            "Organize the information logically",
            f"Use {fmt} for clarity",
        ]
    if role is Role.REWRITER:
        style = f"style: {args['style']}" if args.get("style") else "requested style"
        audience = (
            f"audience: {args['audience']}" if args.get("audience") else "target audience"
        )
        return [
            "First, analyze the original content in <thinking> tags",
            "Identify the core messages to preserve",
            "Write the new version in <rewritten> tags",
            f"Adapt to the {style}",
            f"Tailor it for the {audience}",
            "Keep facts intact while improving expression",
        ]
    if role is Role.ANALYST:
        return [
            "First, examine the information in <thinking> tags",
            "Identify patterns, trends and relationships",
            "Analyze implications in <analysis> tags",
            "Give evidence-based insights in <insights> tags",
            "Draw conclusions in <conclusions> tags",
            "Suggest next actions in <recommendations> tags",
        ]
    perspective = args.get("role") or "your role"
    return [
        f"First, analyze the task from the perspective of {perspective} in <thinking> tags",
        "Consider all relevant factors and context",
        "Apply your specialized expertise to the problem",
        "Give a complete response in <response> tags",
        "Include actionable recommendations in <recommendations> tags",
        "Focus on the value your perspective adds",
    ]


class RoleModelMapping(BaseModel):
    """Provider, model and sampling settings for one role."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: str
    model: str
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)


class RoleModelConfig(BaseModel):
    """Role-to-model table with a fallback entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    default: RoleModelMapping
    roles: dict[Role, RoleModelMapping] = Field(default_factory=dict)


_DEFAULT_MODEL = "claude-sonnet-4-5"

DEFAULT_ROLE_MODEL_CONFIG = RoleModelConfig(
    default=RoleModelMapping(
        provider="anthropic", model=_DEFAULT_MODEL, temperature=0.2, max_tokens=4000
    ),
    roles={
        Role.CODER: RoleModelMapping(
            provider="anthropic", model=_DEFAULT_MODEL, temperature=0.1, max_tokens=4000
        ),
        Role.REWRITER: RoleModelMapping(
            provider="anthropic", model=_DEFAULT_MODEL, temperature=0.7, max_tokens=8000
        ),
        Role.UI_UX: RoleModelMapping(
            provider="anthropic", model=_DEFAULT_MODEL, temperature=0.4, max_tokens=4000
        ),
        Role.ANALYST: RoleModelMapping(
            provider="anthropic", model=_DEFAULT_MODEL, temperature=0.3, max_tokens=6000
        ),
    },
)


def model_for_role(
    role: Role | str, config: RoleModelConfig = DEFAULT_ROLE_MODEL_CONFIG
) -> RoleModelMapping:
    """Return the mapping for *role*, falling back to ``config.default``."""
    try:
        key = Role(role)
    except ValueError:
        return config.default
    return config.roles.get(key, config.default)


@dataclass(frozen=True)
class ContextFile:
    """A file loaded for prompt context; ``path`` is relative to the base."""

    path: str
    content: str


class FileContext:
    """Load related files from under a base directory.

    Paths are resolved against ``base_path``; anything that escapes it
    (``..``, absolute paths elsewhere, symlinks out) raises ContextError.
    """

    def __init__(self, base_path: str | Path, *, max_bytes: int = 256_000) -> None:
        self.base_path = Path(base_path).resolve()
        self.max_bytes = max_bytes

    def resolve(self, path: str | Path) -> Path:
        candidate = (self.base_path / path).resolve()
        if not candidate.is_relative_to(self.base_path):
            raise ContextError(
                f"Path escapes the context directory: {path}",
                hint=f"Only files under {self.base_path} can be attached.",
            )
        return candidate

    def load(self, paths: Iterable[str | Path]) -> list[ContextFile]:
        files: list[ContextFile] = []
        for path in paths:
            resolved = self.resolve(path)
            if not resolved.is_file():
                raise ContextError(f"Context file not found: {path}")
            size = resolved.stat().st_size
            if size > self.max_bytes:
                raise ContextError(
                    f"Context file too large: {path} ({size} bytes)",
                    hint=f"Limit is {self.max_bytes} bytes.",
                )
            try:
                content = resolved.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                raise ContextError(f"Failed to read context file: {path}") from e
            relative = resolved.relative_to(self.base_path).as_posix()
            files.append(ContextFile(path=relative, content=content))
            logger.debug("Loaded context file %s (%d bytes)", relative, size)
        return files


def _format_tools(tools: Sequence[Tool]) -> str:
    lines = ["<available_tools>"]
    for tool in sorted(tools, key=lambda t: t.name):
        summary = tool.description.split(".")[0].strip()
        lines.append(f"- {tool.name}: {summary}" if summary else f"- {tool.name}")
    lines.append("</available_tools>")
    return "\n".join(lines)


def build_xml_prompt(
    role: Role | str,
    task: str,
    *,
    context: str | None = None,
    files: Sequence[ContextFile] = (),
    role_args: Mapping[str, Any] | None = None,
    tools: Sequence[Tool] | None = None,
) -> str:
    """Assemble the sectioned prompt text for *role*.

    Sections appear in a fixed order: role, task, context, related_files, one
    tag per non-empty role argument, available_tools, instructions.
    """
    role = Role(role)
    args = dict(role_args or {})
    sections = [
        f"<role>{role_description(role, args)}</role>",
        f"<task>{task}</task>",
    ]
    if context:
        sections.append(f"<context>{context}</context>")
    if files:
        body = "\n".join(
            f'<file path="{f.path}">\n{f.content}\n</file>' for f in files
        )
        sections.append(f"<related_files>\n{body}\n</related_files>")

    arg_lines = []
    for key, value in args.items():
        if value is None or value == "":
            continue
        rendered = value if isinstance(value, str) else json.dumps(value)
        arg_lines.append(f"<{key}>{rendered}</{key}>")
    if arg_lines:
        sections.append("\n".join(arg_lines))

    instructions = role_instructions(role, args)
    if tools:
        sections.append(_format_tools(tools))
        instructions = [*instructions, "Use the available tools when they help with the task"]

    numbered = "\n".join(f"{i}. {line}" for i, line in enumerate(instructions, 1))
    sections.append(f"<instructions>\n{numbered}\n</instructions>")
    return "\n\n".join(sections)


def build_role_request(
    role: Role | str,
    task: str,
    *,
    context: str | None = None,
    files: Sequence[ContextFile] = (),
    role_args: Mapping[str, Any] | None = None,
    tools: Sequence[Tool] | None = None,
    config: RoleModelConfig = DEFAULT_ROLE_MODEL_CONFIG,
) -> ProviderRequest:
    """Build a one-message request for *role* using its model mapping.

    The mapping's ``provider`` tells the caller which adapter to send it to.
    """
    mapping = model_for_role(role, config)
    prompt = build_xml_prompt(
        role, task, context=context, files=files, role_args=role_args, tools=tools
    )
    return ProviderRequest.from_prompt(
        prompt,
        tools=tuple(tools) if tools else None,
        model=mapping.model,
        temperature=mapping.temperature,
        max_tokens=mapping.max_tokens,
    )
