"""End-to-end tests over an in-memory MCP connection.

The real FastMCP server and the real client handlers talk through the SDK's
memory streams; only the model and the operator are doubles. This covers
discovery, tool calls, resource reads, prompts, completion, and the
server-to-client sampling round trip.
"""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from mcp.shared.memory import create_connected_server_and_client_session
from mcp.types import PromptReference
from pydantic import AnyUrl

from user_directory.client import UserDirectoryClient
from user_directory.server import mcp
from user_directory.storage import UserStore


ANA = {"name": "Ana", "email": "a@x.com", "address": "1 Main St", "phone": "555-0100"}
BEN = {"name": "Ben", "email": "b@x.com", "address": "2 Main St", "phone": "555-0101"}


class ConfirmAll:
    """Operator that confirms every prompt."""

    def __init__(self):
        self.confirmed = 0

    async def confirm(self, message, default=True):
        self.confirmed += 1
        return True


@pytest.fixture
def store(tmp_path):
    store = UserStore(tmp_path / "users.json")
    with patch("user_directory.server.user_store", store):
        yield store


@pytest.fixture
def model():
    model = Mock()
    model.model = "test-model"
    model.generate_text = AsyncMock(return_value=f"```json\n{json.dumps(BEN)}\n```")
    return model


class TestEndToEnd:
    """Test the client and server against each other."""

    @pytest.mark.asyncio
    async def test_discovery(self, store, model):
        app = UserDirectoryClient(model, ConfirmAll())
        async with create_connected_server_and_client_session(
            mcp._mcp_server, sampling_callback=app.handle_sampling
        ) as session:
            await app.connect(session)

        catalog = app.catalog
        assert {t.name for t in catalog.tools} == {"create-user", "create-random-user"}
        assert {p.name for p in catalog.prompts} == {"generate-fake-user", "user-greeting"}
        assert [str(r.uri) for r in catalog.resources] == ["users://all"]
        assert [t.uriTemplate for t in catalog.resource_templates] == ["users://{userId}/profile"]

        create_user = next(t for t in catalog.tools if t.name == "create-user")
        assert set(create_user.inputSchema["properties"]) == {"name", "email", "address", "phone"}
        assert create_user.annotations.openWorldHint is True
        assert create_user.annotations.readOnlyHint is False

        greeting = next(p for p in catalog.prompts if p.name == "user-greeting")
        assert [a.name for a in greeting.arguments] == ["department", "name"]

    @pytest.mark.asyncio
    async def test_create_and_read_user(self, store, model):
        """Test creating Ana on an empty store and reading her back."""
        async with create_connected_server_and_client_session(mcp._mcp_server) as session:
            result = await session.call_tool("create-user", arguments=ANA)
            assert result.content[0].text == "User 1 created successfully"

            profile = await session.read_resource(AnyUrl("users://1/profile"))
            assert json.loads(profile.contents[0].text) == {"id": 1, **ANA}
            assert profile.contents[0].mimeType == "application/json"

            missing = await session.read_resource(AnyUrl("users://999/profile"))
            assert json.loads(missing.contents[0].text) == {"error": "User not found"}

            everyone = await session.read_resource(AnyUrl("users://all"))
            assert json.loads(everyone.contents[0].text) == [{"id": 1, **ANA}]

        assert store.load() == [{"id": 1, **ANA}]

    @pytest.mark.asyncio
    async def test_create_user_rejects_missing_fields(self, store, model):
        """Test schema validation happens before the handler runs."""
        async with create_connected_server_and_client_session(mcp._mcp_server) as session:
            result = await session.call_tool("create-user", arguments={"name": "Ana"})

        assert result.isError
        assert len(result.content) >= 1
        assert store.load() == []

    @pytest.mark.asyncio
    async def test_random_user_through_sampling(self, store, model):
        """Test the server's sampling request is answered by the client handler."""
        operator = ConfirmAll()
        app = UserDirectoryClient(model, operator)
        async with create_connected_server_and_client_session(
            mcp._mcp_server, sampling_callback=app.handle_sampling
        ) as session:
            await app.connect(session)
            await session.call_tool("create-user", arguments=ANA)
            result = await session.call_tool("create-random-user", arguments={})

        assert result.content[0].text == "User 2 created successfully"
        assert store.load()[-1] == {"id": 2, **BEN}
        assert operator.confirmed == 1
        assert model.generate_text.await_args.kwargs["max_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_random_user_with_unusable_reply(self, store, model):
        model.generate_text.return_value = "I cannot do that."
        app = UserDirectoryClient(model, ConfirmAll())
        async with create_connected_server_and_client_session(
            mcp._mcp_server, sampling_callback=app.handle_sampling
        ) as session:
            result = await session.call_tool("create-random-user", arguments={})

        assert result.content[0].text == "Failed to generate user data"
        assert store.load() == []

    @pytest.mark.asyncio
    async def test_prompt_and_completion(self, store, model):
        async with create_connected_server_and_client_session(mcp._mcp_server) as session:
            prompt = await session.get_prompt("generate-fake-user", arguments={"name": "Ana"})
            assert prompt.messages[0].role == "user"
            assert "Ana" in prompt.messages[0].content.text

            departments = await session.complete(
                PromptReference(type="ref/prompt", name="user-greeting"),
                argument={"name": "department", "value": "e"},
            )
            assert departments.completion.values == ["engineering"]

            names = await session.complete(
                PromptReference(type="ref/prompt", name="user-greeting"),
                argument={"name": "name", "value": ""},
                context_arguments={"department": "sales"},
            )
            assert names.completion.values == ["David", "Eve", "Frank"]
