"""
Claude AI service: hosted language model with tool use
"""
import json
from typing import Any, Dict, List, Optional

import anthropic
from loguru import logger

from config import settings
from .base import LanguageModel, ToolSpec


def render_template(template: str, variables: Dict[str, str]) -> str:
    return template.format(**variables)


def extract_json_object(content: str) -> Optional[Dict[str, Any]]:
    """Pull the first JSON object out of a model response."""
    content = content.strip()
    if content.startswith("```"):
        # Remove ```json or ``` prefix and trailing ```
        lines = content.split("\n")
        content = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])

    json_start = content.find("{")
    json_end = content.rfind("}") + 1
    if json_start == -1 or json_end <= json_start:
        return None
    try:
        parsed = json.loads(content[json_start:json_end])
    except json.JSONDecodeError:
        logger.warning("Could not parse Claude response as JSON")
        return None
    return parsed if isinstance(parsed, dict) else None


def response_text(response: Any) -> str:
    return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")


class ClaudeLanguageModel(LanguageModel):
    """Service for generating analyses with Claude, including tool calls"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        max_tool_rounds: Optional[int] = None,
        client: Optional[Any] = None,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key or settings.anthropic_api_key)
        self.model = model or settings.claude_model
        self.max_tokens = max_tokens or settings.claude_max_tokens
        self.max_tool_rounds = max_tool_rounds if max_tool_rounds is not None else settings.max_tool_rounds

    async def complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Single-turn completion without tools."""
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens or self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return response_text(response)

    async def generate(
        self,
        template: str,
        variables: Dict[str, str],
        tools: Optional[List[ToolSpec]] = None,
    ) -> str:
        """
        Run the instruction through Claude, executing requested tool calls
        until the model produces a final answer.
        """
        messages: List[Dict[str, Any]] = [
            {"role": "user", "content": render_template(template, variables)}
        ]
        handlers = {tool.name: tool for tool in tools or []}
        request: Dict[str, Any] = {"model": self.model, "max_tokens": self.max_tokens}
        if handlers:
            request["tools"] = [tool.to_anthropic() for tool in handlers.values()]

        for round_number in range(self.max_tool_rounds + 1):
            response = await self.client.messages.create(messages=messages, **request)

            if response.stop_reason != "tool_use":
                return response_text(response)

            if round_number == self.max_tool_rounds:
                break

            messages.append({"role": "assistant", "content": response.content})
            results = []
            for block in response.content:
                if getattr(block, "type", None) == "tool_use":
                    results.append(await self._run_tool(handlers, block))
            messages.append({"role": "user", "content": results})

        raise RuntimeError(f"Claude did not finish within {self.max_tool_rounds} tool rounds")

    async def _run_tool(self, handlers: Dict[str, ToolSpec], block: Any) -> Dict[str, Any]:
        tool = handlers.get(block.name)
        if tool is None:
            logger.warning(f"Claude requested unknown tool: {block.name}")
            return {
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": json.dumps({"error": f"Unknown tool: {block.name}"}),
                "is_error": True,
            }

        logger.info(f"Claude tool call: {block.name}({block.input})")
        try:
            result = await tool.handler(dict(block.input or {}))
        except Exception as e:
            logger.error(f"Tool {block.name} failed: {e}")
            return {
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": json.dumps({"error": str(e)}),
                "is_error": True,
            }

        return {
            "type": "tool_result",
            "tool_use_id": block.id,
            "content": json.dumps(result, default=str),
        }
