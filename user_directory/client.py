"""User Directory MCP Client.

Interactive client for the User Directory server. On startup it launches the
server over stdio, lists tools, prompts, resources and resource templates, and
registers a sampling handler so the server can ask for generated text. An
operator then runs tools, reads resources, runs prompts, or sends free-text
queries that the model may answer by calling one of the server's tools.
"""

import asyncio
import json
import logging
import os
import re
import shlex
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from anthropic import APIError
from dotenv import load_dotenv
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.context import RequestContext
from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    CreateMessageRequestParams,
    CreateMessageResult,
    ErrorData,
    Prompt,
    PromptMessage,
    PromptReference,
    Resource,
    ResourceTemplate,
    SamplingMessage,
    TextContent,
    Tool,
)
from pydantic import AnyUrl

from user_directory.llm import GenerativeModel, build_function_declarations

# Logs go to stderr so they never mix with menu output
logging.basicConfig(stream=sys.stderr, level=logging.WARNING)
logger = logging.getLogger("user-directory.client")

# Load environment variables from .env file
load_dotenv()

DEFAULT_MODEL = "claude-3-5-haiku-latest"
PLACEHOLDER_PATTERN = re.compile(r"\{([^}]+)\}")
MENU = ["Query", "Tools", "Resources", "Prompts", "Exit"]
NO_TEXT_MESSAGE = "No text generated"

Ask = Callable[[str], Awaitable[str]]


def validate_environment() -> None:
    """Validate required environment variables."""
    required_vars = ["ANTHROPIC_API_KEY"]
    missing_vars = [var for var in required_vars if not os.getenv(var)]

    if missing_vars:
        error_msg = f"Missing required environment variables: {missing_vars}"
        logger.error(error_msg)
        raise ValueError(error_msg)


def get_config() -> Dict[str, Any]:
    """Get configuration from environment variables."""
    return {
        "log_level": os.getenv("LOG_LEVEL", "WARNING"),
        "api_key": os.getenv("ANTHROPIC_API_KEY", ""),
        "model": os.getenv("LLM_MODEL", DEFAULT_MODEL),
        "max_tokens": int(os.getenv("LLM_MAX_TOKENS", "1024")),
        "server_command": os.getenv("MCP_SERVER_COMMAND", sys.executable),
        "server_args": shlex.split(os.getenv("MCP_SERVER_ARGS", "-m user_directory.server")),
        "server_log": os.getenv("MCP_SERVER_LOG", os.devnull),
    }


@dataclass
class Catalog:
    """Everything the server advertised at connect time."""

    tools: List[Tool] = field(default_factory=list)
    prompts: List[Prompt] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    resource_templates: List[ResourceTemplate] = field(default_factory=list)


async def discover(session: ClientSession) -> Catalog:
    """List the four server catalogs concurrently.

    Raises:
        McpError: If any listing fails; the client cannot start without all four
    """
    tools, prompts, resources, templates = await asyncio.gather(
        session.list_tools(),
        session.list_prompts(),
        session.list_resources(),
        session.list_resource_templates(),
    )
    logger.info(
        f"Discovered {len(tools.tools)} tools, {len(prompts.prompts)} prompts, "
        f"{len(resources.resources)} resources, {len(templates.resourceTemplates)} templates"
    )
    return Catalog(
        tools=tools.tools,
        prompts=prompts.prompts,
        resources=resources.resources,
        resource_templates=templates.resourceTemplates,
    )


def coerce_value(raw: str, schema: Dict[str, Any]) -> Any:
    """Convert operator input to the JSON type a schema property declares.

    Values that do not convert are sent unchanged so the server reports the
    validation problem.
    """
    kind = schema.get("type", "string")
    try:
        if kind == "integer":
            return int(raw)
        if kind == "number":
            return float(raw)
    except ValueError:
        return raw
    if kind == "boolean" and raw.strip().lower() in ("true", "false", "yes", "no", "y", "n", "1", "0"):
        return raw.strip().lower() in ("true", "yes", "y", "1")
    return raw


def first_text_block(content: Sequence[Any]) -> Optional[str]:
    """Text of the first content block, if that block is text."""
    if not content:
        return None
    return getattr(content[0], "text", None)


async def resolve_uri_template(uri: str, ask: Ask) -> str:
    """Fill every {placeholder} in a resource URI.

    Each occurrence is asked for separately, in order of appearance, even when
    the same name appears twice. Values containing braces are asked for again
    so the resolved URI never carries a literal placeholder.
    """
    names = PLACEHOLDER_PATTERN.findall(uri)
    if not names:
        return uri

    values = []
    for name in names:
        value = await ask(f"Enter value for {name}")
        while "{" in value or "}" in value:
            print(f"Value for {name} cannot contain braces", file=sys.stderr)
            value = await ask(f"Enter value for {name}")
        values.append(value)
    remaining = iter(values)
    return PLACEHOLDER_PATTERN.sub(lambda _: next(remaining), uri)


class Operator:
    """Console prompts for the person driving the client.

    input() runs in a worker thread so the event loop keeps serving requests
    from the server while waiting for the operator.
    """

    async def _read(self, message: str) -> str:
        return await asyncio.to_thread(input, f"{message} ")

    async def ask(self, message: str) -> str:
        return (await self._read(message)).strip()

    async def confirm(self, message: str, default: bool = True) -> bool:
        suffix = "[Y/n]" if default else "[y/N]"
        answer = (await self._read(f"{message} {suffix}")).strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")

    async def select(self, message: str, choices: List[Tuple[str, str]]) -> str:
        """Show a numbered menu of (label, value) pairs.

        Returns:
            The chosen value, or the raw answer when it is not a menu number
        """
        print(message)
        for index, (label, _) in enumerate(choices, 1):
            print(f"  {index}. {label}")
        answer = (await self._read(">")).strip()
        if answer.isdigit() and 1 <= int(answer) <= len(choices):
            return choices[int(answer) - 1][1]
        return answer


class UserDirectoryClient:
    """Drives the interactive session against a connected server."""

    def __init__(self, model: GenerativeModel, operator: Optional[Operator] = None):
        self.model = model
        self.operator = operator or Operator()
        self.session: Optional[ClientSession] = None
        self.catalog = Catalog()

    async def connect(self, session: ClientSession) -> None:
        """Attach an initialized session and load its catalogs."""
        self.session = session
        self.catalog = await discover(session)

    async def handle_server_message(
        self, message: Union[PromptMessage, SamplingMessage], max_tokens: Optional[int] = None
    ) -> Optional[str]:
        """Offer one server message to the operator and complete it if confirmed.

        Returns:
            Generated text, or None for non-text or declined messages
        """
        content = message.content
        if getattr(content, "type", None) != "text":
            return None

        print(content.text)
        run = await self.operator.confirm("Would you like to run the above prompt", default=True)
        if not run:
            return None

        return await self.model.generate_text(content.text, max_tokens=max_tokens)

    async def handle_sampling(
        self,
        context: RequestContext[ClientSession, Any],
        params: CreateMessageRequestParams,
    ) -> Union[CreateMessageResult, ErrorData]:
        """Answer sampling/createMessage requests from the server."""
        logger.info(f"Sampling request with {len(params.messages)} message(s)")
        texts = []
        try:
            for message in params.messages:
                text = await self.handle_server_message(message, max_tokens=params.maxTokens)
                if text is not None:
                    texts.append(text)
        except APIError as e:
            logger.error(f"Model call for sampling failed: {e}")
            return ErrorData(code=INTERNAL_ERROR, message=f"Model call failed: {e}")

        return CreateMessageResult(
            role="assistant",
            model=self.model.model,
            stopReason="endTurn",
            content=TextContent(type="text", text="\n".join(texts)),
        )

    async def handle_tool(self, tool: Tool) -> None:
        args: Dict[str, Any] = {}
        properties = (tool.inputSchema or {}).get("properties") or {}
        for key, schema in properties.items():
            raw = await self.operator.ask(f"Enter value for {key} ({schema.get('type', 'string')})")
            args[key] = coerce_value(raw, schema)

        result = await self.session.call_tool(tool.name, arguments=args)
        text = first_text_block(result.content)
        if text is not None:
            print(text)

    async def handle_resource(self, uri: str) -> None:
        final_uri = await resolve_uri_template(uri, self.operator.ask)

        try:
            result = await self.session.read_resource(AnyUrl(final_uri))
        except (McpError, ValueError) as e:
            logger.error(f"Reading {final_uri} failed: {e}")
            print(f"Failed to read resource {final_uri}: {e}", file=sys.stderr)
            return

        text = first_text_block(result.contents)
        if text is None:
            print(f"Resource {final_uri} has no text content", file=sys.stderr)
            return

        try:
            print(json.dumps(json.loads(text), indent=2, ensure_ascii=False))
        except ValueError:
            print(text)

    async def suggest(self, prompt_name: str, argument_name: str, resolved: Dict[str, str]) -> List[str]:
        """Ask the server for completions of a prompt argument."""
        try:
            result = await self.session.complete(
                PromptReference(type="ref/prompt", name=prompt_name),
                argument={"name": argument_name, "value": ""},
                context_arguments=dict(resolved) or None,
            )
        except McpError as e:
            logger.debug(f"No completions for {prompt_name}.{argument_name}: {e}")
            return []
        return list(result.completion.values)

    async def handle_prompt(self, prompt: Prompt) -> None:
        args: Dict[str, str] = {}
        for argument in prompt.arguments or []:
            suggestions = await self.suggest(prompt.name, argument.name, args)
            hint = f" ({', '.join(suggestions)})" if suggestions else ""
            args[argument.name] = await self.operator.ask(f"Enter value for {argument.name}{hint}:")

        response = await self.session.get_prompt(prompt.name, arguments=args)

        for message in response.messages:
            text = await self.handle_server_message(message)
            if text is not None:
                print(text)

    async def handle_query(self, tools: List[Tool]) -> None:
        """Send a free-text query with the tool catalog attached as functions.

        A function call in the reply runs the named tool; reply text is printed
        as well, whether or not a function was called.
        """
        query = await self.operator.ask("Enter your query:")
        reply = await self.model.generate_with_tools(query, build_function_declarations(tools))

        if reply.function_call:
            logger.info(f"Model called {reply.function_call.name}")
            result = await self.session.call_tool(
                reply.function_call.name, arguments=reply.function_call.args
            )
            text = first_text_block(result.content)
            if text is not None:
                print(text)

        if reply.text:
            print(reply.text)
        elif reply.function_call is None:
            print(NO_TEXT_MESSAGE)

    async def choose_tool(self) -> None:
        tools = self.catalog.tools
        tool_name = await self.operator.select(
            "Select a tool to run",
            [((t.annotations.title if t.annotations and t.annotations.title else t.name), t.name) for t in tools],
        )
        tool = next((t for t in tools if t.name == tool_name), None)
        if tool is None:
            print("Tool not found", file=sys.stderr)
            return
        await self.handle_tool(tool)

    async def choose_resource(self) -> None:
        resources = [(r.name, str(r.uri)) for r in self.catalog.resources]
        templates = [(t.name, t.uriTemplate) for t in self.catalog.resource_templates]
        chosen = await self.operator.select("Select a resource to read", resources + templates)

        uri = next((value for _, value in resources + templates if value == chosen), None)
        if uri is None:
            print("Resource not found", file=sys.stderr)
            return
        await self.handle_resource(uri)

    async def choose_prompt(self) -> None:
        prompts = self.catalog.prompts
        prompt_name = await self.operator.select("Select a prompt", [(p.name, p.name) for p in prompts])
        prompt = next((p for p in prompts if p.name == prompt_name), None)
        if prompt is None:
            print("Prompt not found.", file=sys.stderr)
            return
        await self.handle_prompt(prompt)

    async def dispatch(self, option: str) -> None:
        if option == "Query":
            await self.handle_query(self.catalog.tools)
        elif option == "Tools":
            await self.choose_tool()
        elif option == "Resources":
            await self.choose_resource()
        elif option == "Prompts":
            await self.choose_prompt()
        else:
            print(f"Unknown option: {option}", file=sys.stderr)

    async def run(self) -> None:
        """Menu loop. Ends on Exit or end of input."""
        while True:
            try:
                option = await self.operator.select("What would you like to do?", [(o, o) for o in MENU])
            except EOFError:
                break
            if option == "Exit":
                break

            try:
                await self.dispatch(option)
            except EOFError:
                break
            except (McpError, APIError) as e:
                logger.error(f"{option} failed: {e}")
                print(f"Error: {e}", file=sys.stderr)


async def run_client(config: Dict[str, Any]) -> None:
    """Launch the server, connect, discover, and hand over to the menu loop."""
    model = GenerativeModel(config["api_key"], config["model"], config["max_tokens"])
    app = UserDirectoryClient(model)

    server_params = StdioServerParameters(
        command=config["server_command"],
        args=config["server_args"],
        env=dict(os.environ),
    )

    with open(config["server_log"], "a", encoding="utf-8") as errlog:
        async with stdio_client(server_params, errlog=errlog) as (read, write):
            async with ClientSession(read, write, sampling_callback=app.handle_sampling) as session:
                await session.initialize()
                await app.connect(session)
                print("You're Connected")
                await app.run()


def main() -> None:
    try:
        validate_environment()
    except ValueError:
        sys.exit(1)

    config = get_config()
    logging.getLogger("user-directory").setLevel(getattr(logging, config["log_level"].upper()))

    try:
        asyncio.run(run_client(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception as e:
        logger.error(f"Client failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
