import pytest
from pydantic import BaseModel, Field

from session_agent.exceptions import ToolNotFound
from session_agent.tools import Tool, ToolCatalog, ToolInput


class SearchInput(ToolInput):
    query: str = Field(..., description="Search query")
    limit: int = Field(5, description="Maximum results")


class SearchTool(Tool):
    name = "search"
    description = "Search for information"
    input_model = SearchInput

    async def execute(self, context, query: str, limit: int) -> str:
        return f"{limit} results for {query}"


class ApproveInput(BaseModel):
    city: str


class ApproveTool(Tool):
    name = "approve"
    description = "Needs a human"
    input_model = ApproveInput
    execution_kind = "confirm"


async def approve(context, city: str) -> str:
    return city


class TestTool:
    def test_schema_comes_from_input_model(self):
        schema = SearchTool().schema()

        assert schema["properties"]["query"]["description"] == "Search query"
        assert schema["required"] == ["query"]

    def test_descriptor(self):
        descriptor = SearchTool().descriptor()

        assert descriptor["name"] == "search"
        assert descriptor["description"] == "Search for information"
        assert "query" in descriptor["input_schema"]["properties"]

    def test_defaults(self):
        tool = SearchTool()
        assert tool.execution_kind == "auto"
        assert tool.mutates_state is False

    @pytest.mark.asyncio
    async def test_confirm_tool_has_no_execute(self):
        with pytest.raises(NotImplementedError):
            await ApproveTool().execute(None, city="Paris")


class TestToolCatalog:
    def test_lookup(self):
        catalog = ToolCatalog([SearchTool()])

        assert "search" in catalog
        assert len(catalog) == 1
        assert catalog.names == ["search"]
        assert isinstance(catalog.get("search"), SearchTool)

    def test_unknown_tool_raises(self):
        catalog = ToolCatalog([SearchTool()])

        with pytest.raises(ToolNotFound):
            catalog.get("missing")
        assert "missing" not in catalog

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            ToolCatalog([SearchTool(), SearchTool()])

    def test_confirm_tool_needs_handler(self):
        with pytest.raises(ValueError, match="no confirmation handler"):
            ToolCatalog([ApproveTool()])

    def test_handler_needs_confirm_tool(self):
        with pytest.raises(ValueError, match="does not match"):
            ToolCatalog([SearchTool()], confirmations={"search": approve})

    def test_confirmation_table(self):
        catalog = ToolCatalog([SearchTool(), ApproveTool()], confirmations={"approve": approve})

        assert catalog.requires_confirmation("approve") is True
        assert catalog.requires_confirmation("search") is False
        assert catalog.confirmation_for("approve") is approve
        with pytest.raises(ToolNotFound):
            catalog.confirmation_for("search")

    def test_descriptors_preserve_order(self):
        catalog = ToolCatalog([ApproveTool(), SearchTool()], confirmations={"approve": approve})

        assert [d["name"] for d in catalog.descriptors()] == ["approve", "search"]
        assert [t.name for t in catalog] == ["approve", "search"]
