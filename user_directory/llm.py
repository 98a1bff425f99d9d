"""Hosted generative model access for the User Directory client.

Wraps the Anthropic Messages API for the two call shapes the client needs:
plain text completion and a single completion with MCP tools attached as
callable functions. Each call is one HTTP round trip with no retries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic
from mcp.types import Tool

logger = logging.getLogger("user-directory.llm")


@dataclass
class FunctionCall:
    """A tool invocation chosen by the model."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelReply:
    """Text and optional function call from one model response."""

    text: str = ""
    function_call: Optional[FunctionCall] = None


def build_function_declarations(tools: List[Tool]) -> List[Dict[str, Any]]:
    """Translate the MCP tool catalog into model function declarations.

    Args:
        tools: Tools as listed by the server

    Returns:
        List of {name, description, input_schema} dicts
    """
    declarations = []
    for tool in tools:
        schema = tool.inputSchema or {}
        input_schema: Dict[str, Any] = {
            "type": schema.get("type", "object"),
            "properties": schema.get("properties", {}),
        }
        if schema.get("required"):
            input_schema["required"] = schema["required"]

        declarations.append(
            {
                "name": tool.name,
                "description": tool.description or tool.title or tool.name,
                "input_schema": input_schema,
            }
        )
    return declarations


def first_text(response: Any) -> str:
    for block in response.content:
        if block.type == "text":
            return block.text
    return ""


def first_function_call(response: Any) -> Optional[FunctionCall]:
    for block in response.content:
        if block.type == "tool_use":
            return FunctionCall(name=block.name, args=dict(block.input or {}))
    return None


class GenerativeModel:
    """Single-shot access to a hosted model."""

    def __init__(self, api_key: str, model: str, max_tokens: int = 1024, client: Optional[AsyncAnthropic] = None):
        """Initialize the model wrapper.

        Args:
            api_key: Anthropic API key
            model: Model identifier sent with every request
            max_tokens: Default completion budget
            client: Preconfigured SDK client, mainly for tests
        """
        if not api_key or not api_key.strip():
            raise ValueError("ANTHROPIC_API_KEY is required")

        self.model = model
        self.max_tokens = max_tokens
        self.client = client or AsyncAnthropic(api_key=api_key)
        logger.info(f"GenerativeModel initialized for {model}")

    async def generate_text(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Complete a single user message.

        Returns:
            The first text block of the reply, or an empty string
        """
        logger.debug(f"Generating text for prompt of {len(prompt)} chars")
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens or self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return first_text(response)

    async def generate_with_tools(self, query: str, functions: List[Dict[str, Any]]) -> ModelReply:
        """Complete a query with function declarations attached.

        Args:
            query: Free-text operator query
            functions: Declarations from build_function_declarations

        Returns:
            ModelReply with the first text block and the first function call
        """
        logger.debug(f"Generating with {len(functions)} function(s) attached")
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": query}],
        }
        if functions:
            request["tools"] = functions

        response = await self.client.messages.create(**request)
        return ModelReply(text=first_text(response), function_call=first_function_call(response))
