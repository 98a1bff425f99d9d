"""User Directory MCP Server.

A Model Context Protocol server over a flat JSON user database.
Exposes tools for creating users (directly or from model-generated data via
sampling), resources for reading users, and prompts with argument completion.
"""

import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.prompts import base
from mcp.shared.exceptions import McpError
from mcp.types import (
    Completion,
    CompletionArgument,
    CompletionContext,
    PromptReference,
    ResourceTemplateReference,
    SamplingMessage,
    TextContent,
    ToolAnnotations,
)

from user_directory.completions import complete
from user_directory.storage import UserStore

# CRITICAL: Configure logging to stderr only (never stdout - corrupts MCP JSON-RPC)
logging.basicConfig(stream=sys.stderr, level=logging.INFO)
logger = logging.getLogger("user-directory")

# Load environment variables from .env file
load_dotenv()

DEFAULT_DB_PATH = Path(__file__).parent / "data" / "users.json"
TRANSPORTS = ("stdio", "streamable-http", "sse")

SAVE_FAILED_MESSAGE = "Failed to save user"
GENERATE_FAILED_MESSAGE = "Failed to generate user data"
USER_NOT_FOUND = {"error": "User not found"}

RANDOM_USER_INSTRUCTION = (
    "Generate fake user data. The user should have a realistic name, email, "
    "address, and phone number. Return this data as a JSON object with no other "
    "text or formatter so it can be used with JSON.parse."
)

WRITE_ANNOTATIONS = dict(
    readOnlyHint=False,
    destructiveHint=False,
    idempotentHint=False,
    openWorldHint=True,
)


def get_config() -> Dict[str, Any]:
    """Get configuration from environment variables."""
    return {
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "server_name": os.getenv("MCP_SERVER_NAME", "user-directory"),
        "db_path": os.getenv("USERS_DB_PATH", str(DEFAULT_DB_PATH)),
        "transport": os.getenv("MCP_TRANSPORT", "stdio"),
        "sampling_max_tokens": int(os.getenv("SAMPLING_MAX_TOKENS", "1024")),
    }


def validate_environment(config: Dict[str, Any]) -> None:
    """Validate configuration values that have a fixed set of choices."""
    if config["transport"] not in TRANSPORTS:
        error_msg = f"Unsupported MCP_TRANSPORT {config['transport']!r}, expected one of {list(TRANSPORTS)}"
        logger.error(error_msg)
        raise ValueError(error_msg)

    if config["sampling_max_tokens"] < 1:
        raise ValueError("SAMPLING_MAX_TOKENS must be positive")


config = get_config()

# Update logging level if specified
if config["log_level"]:
    logger.setLevel(getattr(logging, config["log_level"].upper()))

# Initialize FastMCP server
mcp = FastMCP(config["server_name"])

user_store = UserStore(config["db_path"])


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence from model output."""
    text = text.strip()
    text = re.sub(r"^```(?:json)?", "", text)
    text = re.sub(r"```$", "", text)
    return text.strip()


@mcp.tool(
    name="create-user",
    title="Create User",
    description="create a new user in the DB",
    annotations=ToolAnnotations(title="Create user", **WRITE_ANNOTATIONS),
)
async def create_user(name: str, email: str, address: str, phone: str) -> str:
    """Store a user from operator- or model-supplied fields."""
    try:
        logger.info("Executing create-user tool")
        user_id = user_store.create_user(
            {"name": name, "email": email, "address": address, "phone": phone}
        )
        return f"User {user_id} created successfully"
    except (RuntimeError, ValueError) as e:
        logger.error(f"create-user failed: {e}")
        return SAVE_FAILED_MESSAGE


@mcp.tool(
    name="create-random-user",
    title="Create a random user",
    description="Create a random user with fake data",
    annotations=ToolAnnotations(title="Create random user", **WRITE_ANNOTATIONS),
)
async def create_random_user(ctx: Context) -> str:
    """Ask the connected client to invent a user, then store it.

    The client answers a sampling request with JSON text. A code fence around
    the JSON is tolerated; anything else that does not parse into a user is
    reported with the generic failure message.
    """
    logger.info("Executing create-random-user tool")
    try:
        result = await ctx.session.create_message(
            messages=[
                SamplingMessage(
                    role="user",
                    content=TextContent(type="text", text=RANDOM_USER_INSTRUCTION),
                )
            ],
            max_tokens=config["sampling_max_tokens"],
        )
    except McpError as e:
        logger.error(f"Sampling request failed: {e}")
        return GENERATE_FAILED_MESSAGE

    if result.content.type != "text":
        logger.error(f"Sampling returned {result.content.type} content, expected text")
        return GENERATE_FAILED_MESSAGE

    try:
        fake_user = json.loads(strip_code_fence(result.content.text))
        user_id = user_store.create_user(fake_user)
    except (RuntimeError, ValueError) as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        logger.error(f"create-random-user failed: {e}")
        return GENERATE_FAILED_MESSAGE

    return f"User {user_id} created successfully"


@mcp.resource(
    "users://all",
    name="users",
    title="users",
    description="get all users from the DB",
    mime_type="application/json",
)
def list_users() -> str:
    try:
        return json.dumps(user_store.list_users(), ensure_ascii=False)
    except RuntimeError as e:
        logger.error(f"users://all failed: {e}")
        return json.dumps({"error": "Failed to read users"})


@mcp.resource(
    "users://{userId}/profile",
    name="user-details",
    title="User Details",
    description="get a user's details from the DB",
    mime_type="application/json",
)
def user_details(userId: str) -> str:
    """Look up one user. Missing and non-numeric ids both read as not found."""
    try:
        user = user_store.get_user(int(userId))
    except ValueError:
        user = None
    except RuntimeError as e:
        logger.error(f"user-details failed: {e}")
        return json.dumps({"error": "Failed to read users"})

    if user is None:
        return json.dumps(USER_NOT_FOUND)
    return json.dumps(user, ensure_ascii=False)


@mcp.prompt(
    name="generate-fake-user",
    title="Generate Fake User",
    description="Generate a fake user based on a given name",
)
def generate_fake_user(name: str) -> List[base.Message]:
    return [
        base.UserMessage(
            f"Generate a fake user with the name {name}. The user should have "
            "a realistic email, address, and phone number."
        )
    ]


@mcp.prompt(
    name="user-greeting",
    title="User Greeting",
    description="Generate a greeting for user members",
)
def user_greeting(department: str, name: str) -> List[base.Message]:
    return [base.UserMessage(f"Hello {name}, welcome to the {department} department!")]


@mcp.completion()
async def complete_argument(
    ref: Union[PromptReference, ResourceTemplateReference],
    argument: CompletionArgument,
    context: Optional[CompletionContext],
) -> Optional[Completion]:
    """Answer completion/complete requests for prompt arguments."""
    if not isinstance(ref, PromptReference):
        return None

    resolved = (context.arguments if context else None) or {}
    values = complete(ref.name, argument.name, argument.value, resolved)
    if values is None:
        return None

    logger.debug(f"Completing {ref.name}.{argument.name}={argument.value!r}: {values}")
    return Completion(values=values, total=len(values), hasMore=False)


def main() -> None:
    validate_environment(config)
    logger.info(f"Starting {config['server_name']} MCP server on {config['transport']}...")
    mcp.run(transport=config["transport"])


if __name__ == "__main__":
    main()
