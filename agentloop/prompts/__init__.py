from agentloop.prompts.system import (
    FINAL_ANSWER_INSTRUCTION,
    TOOL_ERROR_TEMPLATE,
    build_system_prompt,
)

__all__ = ["FINAL_ANSWER_INSTRUCTION", "TOOL_ERROR_TEMPLATE", "build_system_prompt"]
