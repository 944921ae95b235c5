"""Tests for the MCP tool pipeline, resources and prompts."""

import json

import pytest

from notebypine import mcp_server
from notebypine.middleware.rate_limit import ToolRateLimiter
from notebypine.utils.errors import NotFoundError, RateLimitError, ValidationError


class TestToolDefinitions:

    @pytest.mark.asyncio
    async def test_seven_tools_listed(self):
        tools = await mcp_server.list_tools()
        assert [t.name for t in tools] == [
            "create_incident", "search_incidents", "add_solution", "extract_lessons",
            "get_similar_incidents", "update_incident_status", "export_knowledge",
        ]

    def test_descriptions_point_at_reference_docs(self):
        for summary in mcp_server.tool_summaries():
            assert summary["specPath"] == f"docs/specs/tools/{summary['name']}.md"
            assert summary["description"].endswith(f"Docs: {summary['specPath']}")

    def test_required_arguments(self):
        schemas = {t["name"]: t["inputSchema"] for t in mcp_server.TOOL_DEFINITIONS}
        assert schemas["create_incident"]["required"] == ["title", "category", "description", "severity"]
        assert schemas["export_knowledge"]["properties"]["format"]["enum"] == ["json", "csv", "markdown"]


class TestPreValidate:

    def test_title_required(self):
        assert mcp_server.pre_validate("create_incident", {"category": "Backend"}) == "Title is required"

    def test_title_too_long(self):
        error = mcp_server.pre_validate("create_incident", {"title": "x" * 201, "category": "Backend"})
        assert error == "Title must be 200 characters or less"

    def test_unknown_category(self):
        error = mcp_server.pre_validate("create_incident", {"title": "t", "category": "Cooking"})
        assert error == "Valid category is required"

    def test_search_limits(self):
        assert mcp_server.pre_validate("search_incidents", {"query": " "}) == "Query is required"
        assert mcp_server.pre_validate("search_incidents", {"query": "x", "limit": 0}) == (
            "Limit must be between 1 and 100"
        )
        assert mcp_server.pre_validate("search_incidents", {"query": "x", "limit": 100}) is None

    def test_similar_limit(self):
        error = mcp_server.pre_validate("get_similar_incidents", {"incident_id": "a", "limit": 21})
        assert error == "Limit must be between 1 and 20"

    def test_export_format(self):
        assert mcp_server.pre_validate("export_knowledge", {"format": "pdf"}).startswith("Format is required")
        assert mcp_server.pre_validate("export_knowledge", {"format": "csv"}) is None

    def test_incident_id_required(self):
        for name in ("add_solution", "extract_lessons", "update_incident_status"):
            assert mcp_server.pre_validate(name, {}) == "incident_id is required"


class TestExecuteTool:

    @pytest.mark.asyncio
    async def test_create_incident(self, db):
        data = await mcp_server.execute_tool("create_incident", {
            "title": "Payment webhook 502",
            "category": "Finance",
            "description": "Gateway answers 502 on callback",
            "severity": "critical",
        })
        assert data["status"] == "open"
        assert data["frequency"] == "one-time"

    @pytest.mark.asyncio
    async def test_pydantic_errors_become_validation_errors(self, db):
        with pytest.raises(ValidationError) as exc:
            await mcp_server.execute_tool("create_incident", {
                "title": "t", "category": "Backend", "description": "d", "severity": "urgent",
            })
        assert exc.value.message.startswith("Invalid argument 'severity'")

    @pytest.mark.asyncio
    async def test_search(self, db, seeded):
        data = await mcp_server.execute_tool("search_incidents", {"query": "pool", "category": "Backend"})
        assert data["total"] == 2
        assert data["query"] == "pool"

    @pytest.mark.asyncio
    async def test_similar_for_missing_incident(self, db):
        with pytest.raises(NotFoundError):
            await mcp_server.execute_tool("get_similar_incidents", {"incident_id": "missing00000000"})

    @pytest.mark.asyncio
    async def test_arguments_are_prevalidated(self, db):
        with pytest.raises(ValidationError) as exc:
            await mcp_server.execute_tool("update_incident_status", {"status": "resolved"})
        assert exc.value.message == "incident_id is required"

        with pytest.raises(ValidationError) as exc:
            await mcp_server.execute_tool("format_disk", {})
        assert exc.value.message == "Unknown tool: format_disk"

    @pytest.mark.asyncio
    async def test_export_with_filter(self, db, seeded):
        data = await mcp_server.execute_tool("export_knowledge", {
            "format": "json", "filter": {"status": "resolved"},
        })
        assert data["count"] == 1
        assert json.loads(data["content"])[0]["id"] == seeded["css"]["id"]


class TestHandleToolCall:

    @pytest.mark.asyncio
    async def test_unknown_tool(self, db):
        with pytest.raises(ValidationError) as exc:
            await mcp_server.handle_tool_call("drop_tables", {})
        assert exc.value.message == "Unknown tool: drop_tables"

    @pytest.mark.asyncio
    async def test_pre_validation_runs_before_pocketbase(self, fake_pb, db):
        with pytest.raises(ValidationError):
            await mcp_server.handle_tool_call("search_incidents", {"query": ""})
        assert fake_pb.requests == []

    @pytest.mark.asyncio
    async def test_create_renders_id(self, fake_pb, db):
        text = await mcp_server.handle_tool_call("create_incident", {
            "title": "Queue stuck",
            "category": "DevOps",
            "description": "Jobs never leave pending",
            "severity": "medium",
        })
        record = fake_pb.records("incidents")[0]
        assert text.startswith("Incident created successfully.")
        assert f"- ID: {record['id']}" in text

    @pytest.mark.asyncio
    async def test_search_rendering(self, db, seeded):
        text = await mcp_server.handle_tool_call("search_incidents", {"query": "safari"})
        assert text.startswith('Found 1 incident(s) matching "safari":')
        assert f"[{seeded['css']['id']}]" in text

        empty = await mcp_server.handle_tool_call("search_incidents", {"query": "mainframe"})
        assert empty == 'No incidents found matching "mainframe".'

    @pytest.mark.asyncio
    async def test_read_results_cached_until_a_write(self, fake_pb, db, seeded):
        path = "/api/collections/incidents/records"
        await mcp_server.handle_tool_call("search_incidents", {"query": "pool"})
        first = fake_pb.count_requests("GET", path)
        await mcp_server.handle_tool_call("search_incidents", {"query": "pool"})
        assert fake_pb.count_requests("GET", path) == first

        await mcp_server.handle_tool_call("update_incident_status", {
            "incident_id": seeded["pool"]["id"], "status": "resolved",
        })
        assert len(mcp_server.response_cache) == 0

    @pytest.mark.asyncio
    async def test_add_solution_lists_steps(self, db, seeded):
        text = await mcp_server.handle_tool_call("add_solution", {
            "incident_id": seeded["pool"]["id"],
            "solution_title": "Bound the pool",
            "solution_description": "Fail fast instead of queueing",
            "steps": ["Set max overflow", "Add timeout"],
            "time_estimate": "1 hour",
        })
        assert "- Time estimate: 1 hour" in text
        assert "1. Set max overflow\n2. Add timeout" in text

    @pytest.mark.asyncio
    async def test_extract_lessons_text(self, db, seeded):
        text = await mcp_server.handle_tool_call("extract_lessons", {
            "incident_id": seeded["pool"]["id"],
            "problem_summary": "Pool exhausted",
            "root_cause": "Retries held connections",
            "prevention": "Release before retry",
        })
        assert "- Type: general" in text
        assert "Root Cause: Retries held connections" in text

    @pytest.mark.asyncio
    async def test_status_update_includes_notes(self, db, seeded):
        text = await mcp_server.handle_tool_call("update_incident_status", {
            "incident_id": seeded["timeout"]["id"], "status": "investigating", "notes": "paging DBA",
        })
        assert "- New status: investigating" in text
        assert "- Resolved at: N/A" in text
        assert text.endswith("Notes: paging DBA")

    @pytest.mark.asyncio
    async def test_similar_rendering(self, db, seeded):
        text = await mcp_server.handle_tool_call("get_similar_incidents", {
            "incident_id": seeded["timeout"]["id"],
        })
        assert text.startswith('Found 1 similar incident(s) to "Database connection timeout on checkout":')

    @pytest.mark.asyncio
    async def test_export_rendering(self, db, seeded):
        text = await mcp_server.handle_tool_call("export_knowledge", {"format": "csv"})
        assert text.startswith("Exported 3 incidents in CSV format:")
        assert "```csv\nID,Title" in text

    @pytest.mark.asyncio
    async def test_rate_limit_per_client(self, db, seeded, monkeypatch):
        monkeypatch.setattr(mcp_server, "rate_limiter", ToolRateLimiter(2, 60))
        args = {"query": "pool"}
        await mcp_server.handle_tool_call("search_incidents", args, client_id="agent-a")
        await mcp_server.handle_tool_call("search_incidents", args, client_id="agent-a")
        with pytest.raises(RateLimitError):
            await mcp_server.handle_tool_call("search_incidents", args, client_id="agent-a")
        await mcp_server.handle_tool_call("search_incidents", args, client_id="agent-b")

    @pytest.mark.asyncio
    async def test_call_tool_wraps_errors(self, db):
        from notebypine.mcp_server import ToolExecutionError

        with pytest.raises(ToolExecutionError) as exc:
            await mcp_server.call_tool("search_incidents", {"query": ""})
        assert str(exc.value) == "Error: Query is required"

    @pytest.mark.asyncio
    async def test_call_tool_returns_text_content(self, db, seeded):
        content = await mcp_server.call_tool("search_incidents", {"query": "safari"})
        assert content[0].type == "text"
        assert "Login button misaligned on Safari" in content[0].text


class TestResources:

    @pytest.mark.asyncio
    async def test_listed(self):
        resources = await mcp_server.list_resources()
        assert [str(r.uri).rstrip("/") for r in resources] == [
            "incident://recent", "incident://by-category", "incident://stats",
        ]

    @pytest.mark.asyncio
    async def test_recent(self, db, seeded):
        data = await mcp_server.read_resource_data("incident://recent")
        assert data["total"] == 3
        assert data["incidents"][0]["id"] == seeded["css"]["id"]
        assert "root_cause" not in data["incidents"][0]

    @pytest.mark.asyncio
    async def test_by_category(self, db, seeded):
        data = await mcp_server.read_resource_data("incident://by-category")
        assert data["total_categories"] == 6
        assert len(data["categories"]["Backend"]) == 2
        assert data["categories"]["Mobile"] == []

    @pytest.mark.asyncio
    async def test_stats(self, db, seeded):
        data = await mcp_server.read_resource_data("incident://stats")
        assert data["totals"]["solutions"] == 1
        assert "query_cache" in data["cache"]

    @pytest.mark.asyncio
    async def test_read_resource_serializes_json(self, db, seeded):
        contents = await mcp_server.read_resource("incident://recent")
        assert contents[0].mime_type == "application/json"
        assert json.loads(contents[0].content)["total"] == 3

    @pytest.mark.asyncio
    async def test_unknown_resource(self, db):
        with pytest.raises(ValidationError):
            await mcp_server.read_resource_data("incident://everything")


class TestPrompts:

    @pytest.mark.asyncio
    async def test_listed(self):
        listed = await mcp_server.list_prompts()
        assert [p.name for p in listed] == ["troubleshoot", "document_solution", "analyze_pattern"]
        assert listed[2].arguments[0].required is False

    @pytest.mark.asyncio
    async def test_troubleshoot_includes_matches_and_solutions(self, db, seeded):
        result = await mcp_server.get_prompt("troubleshoot", {"problem_description": "pool"})
        text = result.messages[0].content.text
        assert "**Connection pool exhausted on orders service**" in text
        assert "**Raise pool size**" in text

    @pytest.mark.asyncio
    async def test_troubleshoot_without_matches(self, db, seeded):
        result = await mcp_server.get_prompt("troubleshoot", {"problem_description": "printer jam"})
        text = result.messages[0].content.text
        assert "No similar incidents found in knowledge base." in text
        assert "No solutions found yet." in text

    @pytest.mark.asyncio
    async def test_document_solution(self, db, seeded):
        result = await mcp_server.get_prompt("document_solution", {"incident_id": seeded["timeout"]["id"]})
        text = result.messages[0].content.text
        assert "- **Title:** Database connection timeout on checkout" in text
        assert "- **Lesson Type:** prevention" in text

    @pytest.mark.asyncio
    async def test_document_solution_missing_incident(self, db):
        result = await mcp_server.get_prompt("document_solution", {"incident_id": "missing00000000"})
        assert result.messages[0].content.text == (
            "Error loading prompt document_solution: Incident not found"
        )

    @pytest.mark.asyncio
    async def test_analyze_pattern_for_category(self, db, seeded):
        result = await mcp_server.get_prompt("analyze_pattern", {"category": "Backend"})
        text = result.messages[0].content.text
        assert "Category: Backend" in text
        assert "- **Total Incidents:** 2" in text
        assert "- **Total Solutions:** 1" in text
        assert "- **Unresolved Incidents:** 2" in text

    @pytest.mark.asyncio
    async def test_unknown_prompt(self):
        with pytest.raises(ValueError):
            await mcp_server.get_prompt("haiku", {})
