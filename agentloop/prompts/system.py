"""System prompt builder and the fixed messages the agent injects."""

from __future__ import annotations

from datetime import datetime


def build_system_prompt(
    role_definition: str = "",
    response_rules: str = "",
    now: datetime | None = None,
    extra_sections: list[str] | None = None,
) -> str:
    """
    Build the system prompt for an agent run.

    The role definition and response rules are user-editable; the date
    section is always present so the model can resolve relative dates in
    tool arguments.
    """
    now = now or datetime.now()
    sections: list[str] = [role_definition or DEFAULT_ROLE_DEFINITION]

    sections.append(
        f"## Context\n\nThe current date is {now.strftime('%A, %B %d, %Y')}. "
        f"When the user mentions a month or day without a year, assume {now.year}."
    )
    sections.append(TOOL_USAGE_SECTION)

    if extra_sections:
        sections.extend(extra_sections)

    sections.append("## Response Rules\n\n" + (response_rules or DEFAULT_RESPONSE_RULES))
    return "\n\n".join(sections)


DEFAULT_ROLE_DEFINITION = (
    "You are a helpful assistant with access to tools. "
    "Use them to look up facts instead of guessing."
)

DEFAULT_RESPONSE_RULES = """- Answer in the language the user writes in.
- Base your answer on tool results; say so when the data is insufficient.
- Keep answers concise and well structured."""

TOOL_USAGE_SECTION = """## Tool Usage

- Call a tool whenever the answer depends on data you do not have.
- Only pass arguments that match the tool's parameter schema.
- If a tool returns an error, report it clearly instead of retrying the same call."""

FINAL_ANSWER_INSTRUCTION = (
    "You have reached the tool call limit. Do not call any more tools. "
    "Answer the original question now using the information gathered so far."
)

TOOL_ERROR_TEMPLATE = "Tool execution failed: {error}"
