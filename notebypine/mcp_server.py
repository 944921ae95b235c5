"""
MCP Server - Exposes the NoteByPine incident knowledge base to LLM agents.

Provides:
- Tools: create_incident, search_incidents, add_solution, extract_lessons,
  get_similar_incidents, update_incident_status, export_knowledge
- Resources: incident://recent, incident://by-category, incident://stats
- Prompts: troubleshoot, document_solution, analyze_pattern

Every tool call goes through the same pipeline: per-client rate limit,
argument pre-validation, response cache for read tools, the handler itself,
cache invalidation for write tools, then text rendering.

Run with: notebypine mcp   (or python -m notebypine.mcp_server)
stdout carries the protocol; all logging goes to stderr.
"""

import asyncio
import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult, Prompt, PromptArgument, PromptMessage, Resource, TextContent, Tool,
)
from pydantic import ValidationError as PydanticValidationError

from notebypine import prompts
from notebypine.config import get_settings
from notebypine.database import close_db, connect_db
from notebypine.knowledge import export, incidents, lessons, solutions
from notebypine.middleware.rate_limit import ToolRateLimiter
from notebypine.models.incident import (
    CATEGORIES, FREQUENCIES, SEVERITIES, STATUSES, VISIBILITIES,
    IncidentCreate, IncidentSearch,
)
from notebypine.models.knowledge import EXPORT_FORMATS, ExportFilter
from notebypine.models.lesson import LESSON_TYPES, LessonCreate
from notebypine.models.solution import SolutionCreate, decode_steps
from notebypine.queries import CacheManager, IncidentQueries, QueryBuilder, INCIDENTS
from notebypine.utils.cache import TTLCache
from notebypine.utils.errors import AppError, RateLimitError, ValidationError
from notebypine.utils.log import configure_logging
from notebypine.utils.validators import validate_limit, validate_query, validate_title

logger = logging.getLogger(__name__)

SERVER_NAME = "notebypine-mcp"
SERVER_VERSION = "1.0.0"

server = Server(SERVER_NAME)

READ_TOOLS = ("search_incidents", "get_similar_incidents", "export_knowledge")
WRITE_TOOLS = ("create_incident", "add_solution", "extract_lessons", "update_incident_status")

RESPONSE_CACHE_TTL = 120.0

_settings = get_settings()
rate_limiter = ToolRateLimiter(_settings.tool_rate_limit, _settings.tool_rate_window_seconds)
response_cache = TTLCache(default_ttl=RESPONSE_CACHE_TTL)


class ToolExecutionError(Exception):
    """Raised from call_tool so the SDK reports an isError result."""


# ============================================================
# Tool definitions
# ============================================================
def _spec_path(name: str) -> str:
    return f"docs/specs/tools/{name}.md"


def _enum(values, description: str, default: Optional[str] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "string", "enum": list(values), "description": description}
    if default is not None:
        schema["default"] = default
    return schema


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "create_incident",
        "description": "Create a structured incident record and surface the new PocketBase ID.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "maxLength": 200, "description": "Brief title of the incident (max 200 characters)"},
                "category": _enum(CATEGORIES, "Category of the incident"),
                "description": {"type": "string", "description": "Detailed description of the problem"},
                "symptoms": {"type": "string", "description": "List of symptoms observed (as text)"},
                "context": {"type": "string", "description": "Context information (who, what, when, where, why, how)"},
                "environment": {"type": "string", "description": "Environment details (OS, version, tools)"},
                "severity": _enum(SEVERITIES, "Severity level"),
                "visibility": _enum(VISIBILITIES, "Visibility level", "private"),
                "frequency": _enum(FREQUENCIES, "How often this issue occurs", "one-time"),
            },
            "required": ["title", "category", "description", "severity"],
        },
    },
    {
        "name": "search_incidents",
        "description": "Search incidents with keyword and enum filters for rapid triage.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "maxLength": 500, "description": "Search query - searches in title and description (max 500 characters)"},
                "category": _enum(CATEGORIES, "Filter by category"),
                "severity": _enum(SEVERITIES, "Filter by severity level"),
                "status": _enum(STATUSES, "Filter by status"),
                "limit": {"type": "integer", "default": 10, "minimum": 1, "maximum": 100, "description": "Maximum results to return"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "add_solution",
        "description": "Attach a solution record with step-by-step remediation details.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "incident_id": {"type": "string", "description": "ID of the incident to add solution to"},
                "solution_title": {"type": "string", "description": "Title of the solution"},
                "solution_description": {"type": "string", "description": "Description of the solution"},
                "steps": {
                    "anyOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
                    "description": "Step-by-step instructions (JSON array or formatted text)",
                },
                "resources_needed": {"type": "string", "description": "Resources needed to implement this solution"},
                "time_estimate": {"type": "string", "description": "Estimated time (e.g., \"30 minutes\")"},
                "warnings": {"type": "string", "description": "Warnings or precautions"},
                "alternatives": {"type": "string", "description": "Alternative solutions"},
            },
            "required": ["incident_id", "solution_title", "solution_description", "steps"],
        },
    },
    {
        "name": "extract_lessons",
        "description": "Log a lessons-learned entry and update the source incident root cause.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "incident_id": {"type": "string", "description": "ID of the incident to extract lessons from"},
                "problem_summary": {"type": "string", "description": "Summary of the problem"},
                "root_cause": {"type": "string", "description": "Root cause analysis"},
                "prevention": {"type": "string", "description": "How to prevent this in the future"},
                "lesson_type": _enum(LESSON_TYPES, "Type of lesson", "general"),
            },
            "required": ["incident_id", "problem_summary", "root_cause", "prevention"],
        },
    },
    {
        "name": "get_similar_incidents",
        "description": "Suggest incidents with overlapping signals to reuse fixes.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "incident_id": {"type": "string", "description": "ID of the incident to find similarities for"},
                "limit": {"type": "integer", "default": 5, "minimum": 1, "maximum": 20, "description": "Maximum number of similar incidents to return"},
            },
            "required": ["incident_id"],
        },
    },
    {
        "name": "update_incident_status",
        "description": "Move an incident through its lifecycle and record resolution timestamps.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "incident_id": {"type": "string", "description": "ID of the incident to update"},
                "status": _enum(STATUSES, "New status"),
                "notes": {"type": "string", "description": "Optional update notes"},
            },
            "required": ["incident_id", "status"],
        },
    },
    {
        "name": "export_knowledge",
        "description": "Export the knowledge base in JSON, CSV, or Markdown for sharing.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "format": _enum(EXPORT_FORMATS, "Export format", "json"),
                "filter": {
                    "type": "object",
                    "properties": {
                        "category": {"type": "string", "enum": list(CATEGORIES)},
                        "status": {"type": "string", "enum": list(STATUSES)},
                        "severity": {"type": "string", "enum": list(SEVERITIES)},
                    },
                    "description": "Optional filters",
                },
            },
            "required": ["format"],
        },
    },
]

for _tool in TOOL_DEFINITIONS:
    _tool["specPath"] = _spec_path(_tool["name"])
    _tool["description"] = f"{_tool['description']} Docs: {_tool['specPath']}"

TOOL_NAMES = tuple(t["name"] for t in TOOL_DEFINITIONS)


def tool_summaries() -> List[Dict[str, str]]:
    """Name, description and reference doc of every tool."""
    return [
        {"name": t["name"], "description": t["description"], "specPath": t["specPath"]}
        for t in TOOL_DEFINITIONS
    ]


@server.list_tools()
async def list_tools() -> List[Tool]:
    """List the knowledge base tools."""
    return [
        Tool(name=t["name"], description=t["description"], inputSchema=t["inputSchema"])
        for t in TOOL_DEFINITIONS
    ]


# ============================================================
# Call pipeline
# ============================================================
def pre_validate(name: str, args: Dict[str, Any]) -> Optional[str]:
    """Cheap argument checks run before any PocketBase round-trip.

    Returns:
        Error message, or None when the arguments look valid.
    """
    if name == "create_incident":
        ok, error = validate_title(args.get("title"))
        if not ok:
            return error
        if args.get("category") not in CATEGORIES:
            return "Valid category is required"
    elif name == "search_incidents":
        ok, error = validate_query(args.get("query"))
        if not ok:
            return error
        ok, error = validate_limit(args.get("limit"), 1, 100)
        if not ok:
            return error
    elif name == "get_similar_incidents":
        if not args.get("incident_id"):
            return "incident_id is required"
        ok, error = validate_limit(args.get("limit"), 1, 20)
        if not ok:
            return error
    elif name in ("add_solution", "extract_lessons", "update_incident_status"):
        if not args.get("incident_id"):
            return "incident_id is required"
    elif name == "export_knowledge":
        if args.get("format") not in EXPORT_FORMATS:
            return f"Format is required and must be one of: {', '.join(EXPORT_FORMATS)}"
    return None


def _dump(model) -> Dict[str, Any]:
    return model.model_dump()


async def execute_tool(name: str, args: Dict[str, Any]) -> Any:
    """Run a tool handler and return structured data.

    Arguments go through pre_validate first, and a successful write clears
    the response cache. The Code Mode local invoker calls this directly.

    Raises:
        AppError: On invalid arguments, missing records or PocketBase failures.
    """
    if name not in TOOL_NAMES:
        raise ValidationError(f"Unknown tool: {name}")

    error = pre_validate(name, args)
    if error:
        raise ValidationError(error)

    data = await _dispatch(name, args)
    if name in WRITE_TOOLS:
        response_cache.invalidate()
    return data


async def _dispatch(name: str, args: Dict[str, Any]) -> Any:
    try:
        if name == "create_incident":
            incident = await incidents.create_incident(IncidentCreate(**args))
            return _dump(incident)

        if name == "search_incidents":
            params = IncidentSearch(**args)
            items, total = await incidents.search_incidents(params)
            return {"query": params.query, "items": [_dump(i) for i in items], "total": total}

        if name == "add_solution":
            solution = await solutions.add_solution(SolutionCreate(**args))
            return _dump(solution)

        if name == "extract_lessons":
            lesson = await lessons.extract_lessons(LessonCreate(**args))
            return _dump(lesson)

        if name == "get_similar_incidents":
            source, items, total = await incidents.get_similar_incidents(
                args.get("incident_id"), args.get("limit", 5)
            )
            return {"source": _dump(source), "items": [_dump(i) for i in items], "total": total}

        if name == "update_incident_status":
            incident = await incidents.update_incident_status(
                args.get("incident_id"), args.get("status"), args.get("notes")
            )
            return _dump(incident)

        if name == "export_knowledge":
            filters = ExportFilter(**args["filter"]) if args.get("filter") else None
            result = await export.export_knowledge(args.get("format", "json"), filters)
            return result
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise ValidationError(f"Invalid argument '{field}': {first['msg']}") from e

    raise ValidationError(f"Unknown tool: {name}")


def render_tool_result(name: str, data: Any, args: Optional[Dict[str, Any]] = None) -> str:
    """Human-readable text for a tool result."""
    args = args or {}

    if name == "create_incident":
        return (
            "Incident created successfully.\n\n"
            f"- ID: {data['id']}\n"
            f"- Title: {data['title']}\n"
            f"- Category: {data['category']}\n"
            f"- Severity: {data['severity']}\n"
            f"- Status: {data['status']}\n\n"
            "Use add_solution to attach a fix once one is found."
        )

    if name == "search_incidents":
        if not data["items"]:
            return f"No incidents found matching \"{data['query']}\"."
        lines = [f"Found {data['total']} incident(s) matching \"{data['query']}\":", ""]
        for n, item in enumerate(data["items"], 1):
            lines.append(f"{n}. {item['title']} [{item['id']}]")
            lines.append(
                f"   {item['category']} | {item['severity']} | {item['status']}"
                f" | created {item.get('created') or 'unknown'}"
            )
            description = item.get("description") or ""
            lines.append(f"   {description[:150]}{'...' if len(description) > 150 else ''}")
        return "\n".join(lines)

    if name == "add_solution":
        steps = decode_steps(data.get("steps", ""))
        lines = [
            "Solution added successfully.",
            "",
            f"- ID: {data['id']}",
            f"- Title: {data['solution_title']}",
            f"- Incident ID: {data['incident_id']}",
        ]
        if data.get("time_estimate"):
            lines.append(f"- Time estimate: {data['time_estimate']}")
        if steps:
            lines.append("")
            lines.append("Steps:")
            lines.extend(f"{n}. {step}" for n, step in enumerate(steps, 1))
        return "\n".join(lines)

    if name == "extract_lessons":
        return (
            "Lesson extracted successfully.\n\n"
            f"- ID: {data['id']}\n"
            f"- Type: {data['lesson_type']}\n"
            f"- Incident ID: {data['incident_id']}\n\n"
            f"{data['lesson_text']}"
        )

    if name == "get_similar_incidents":
        source = data["source"]
        if not data["items"]:
            return f"No similar incidents found for \"{source['title']}\"."
        lines = [f"Found {data['total']} similar incident(s) to \"{source['title']}\":", ""]
        for n, item in enumerate(data["items"], 1):
            lines.append(
                f"{n}. {item['title']} [{item['id']}] ({item['severity']}, {item['status']})"
            )
        return "\n".join(lines)

    if name == "update_incident_status":
        text = (
            "Incident status updated successfully.\n\n"
            f"- ID: {data['id']}\n"
            f"- New status: {data['status']}\n"
            f"- Resolved at: {data.get('resolved_at') or 'N/A'}"
        )
        if args.get("notes"):
            text += f"\n\nNotes: {args['notes']}"
        return text

    if name == "export_knowledge":
        fmt = data["format"]
        return (
            f"Exported {data['count']} incidents in {fmt.upper()} format:\n\n"
            f"```{fmt}\n{data['content']}\n```"
        )

    return json.dumps(data, indent=2, default=str)


def _cache_key(name: str, args: Dict[str, Any]) -> str:
    return json.dumps({"name": name, "args": args}, sort_keys=True, default=str)


async def handle_tool_call(name: str, args: Optional[Dict[str, Any]],
                           client_id: str = "anonymous") -> str:
    """Run the full tool pipeline and return rendered text.

    Raises:
        AppError: Rate limiting, validation or handler failures.
    """
    args = args or {}
    request_id = f"req_{uuid.uuid4().hex[:8]}"
    start = time.perf_counter()

    if name not in TOOL_NAMES:
        raise ValidationError(f"Unknown tool: {name}")

    if not rate_limiter.check(client_id):
        logger.warning(f"Rate limit exceeded for client {client_id} ({name})")
        raise RateLimitError("Rate limit exceeded. Please try again later.")

    logger.info(f"Tool called: {name} [{request_id}] client={client_id}")

    error = pre_validate(name, args)
    if error:
        raise ValidationError(error)

    key = _cache_key(name, args)
    data = response_cache.get(key) if name in READ_TOOLS else None
    if data is not None:
        logger.debug(f"Tool result from cache: {name} [{request_id}]")
    else:
        data = await execute_tool(name, args)
        if name in READ_TOOLS:
            response_cache.set(key, data)

    elapsed = (time.perf_counter() - start) * 1000
    logger.info(f"Tool completed: {name} [{request_id}] in {elapsed:.1f}ms")
    return render_tool_result(name, data, args)


def _client_id_from_context() -> str:
    """Client id from the request _meta (clientId), else anonymous."""
    try:
        ctx = server.request_context
    except LookupError:
        return "anonymous"
    meta = getattr(ctx, "meta", None)
    return getattr(meta, "clientId", None) or "anonymous"


@server.call_tool()
async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
    """Handle tool calls from MCP clients."""
    try:
        text = await handle_tool_call(name, arguments, _client_id_from_context())
    except AppError as e:
        logger.error(f"Tool {name} failed: {e.message}")
        raise ToolExecutionError(f"Error: {e.message}") from e
    return [TextContent(type="text", text=text)]


# ============================================================
# Resources
# ============================================================
RESOURCES = [
    {
        "uri": "incident://recent",
        "name": "Recent Incidents",
        "description": "Get the most recent incidents from the knowledge base",
    },
    {
        "uri": "incident://by-category",
        "name": "Incidents by Category",
        "description": "Get incidents organized by category",
    },
    {
        "uri": "incident://stats",
        "name": "Knowledge Base Statistics",
        "description": "Get overall statistics about the knowledge base",
    },
]

_SUMMARY_FIELDS = ["id", "title", "category", "severity", "status", "description", "created", "updated"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def read_resource_data(uri: str) -> Dict[str, Any]:
    """Build the JSON payload for a resource URI."""
    if uri == "incident://recent":
        data = await QueryBuilder(INCIDENTS).sort("created", "desc").limit(20) \
            .select(_SUMMARY_FIELDS).cache_for(60).execute()
        return {
            "total": data.get("totalItems", 0),
            "incidents": data.get("items", []),
            "last_updated": _now(),
        }

    if uri == "incident://by-category":
        pages = await asyncio.gather(*(
            IncidentQueries.get_incidents_paginated(1, 10, category=c).execute()
            for c in CATEGORIES
        ))
        by_category = {}
        for category, page in zip(CATEGORIES, pages):
            by_category[category] = [
                {
                    "id": i["id"],
                    "title": i["title"],
                    "severity": i.get("severity"),
                    "status": i.get("status"),
                    "description": (i.get("description") or "")[:200],
                    "created": i.get("created"),
                }
                for i in page.get("items", [])
            ]
        return {
            "categories": by_category,
            "total_categories": len(by_category),
            "last_updated": _now(),
        }

    if uri == "incident://stats":
        stats = await incidents.incident_stats()
        stats["cache"] = CacheManager.get_stats()
        stats["last_updated"] = _now()
        return stats

    raise ValidationError(f"Unknown resource: {uri}")


@server.list_resources()
async def list_resources() -> List[Resource]:
    return [
        Resource(uri=r["uri"], name=r["name"], description=r["description"],
                 mimeType="application/json")
        for r in RESOURCES
    ]


@server.read_resource()
async def read_resource(uri) -> List[ReadResourceContents]:
    payload = await read_resource_data(str(uri).rstrip("/"))
    return [ReadResourceContents(content=json.dumps(payload, indent=2, default=str),
                                 mime_type="application/json")]


# ============================================================
# Prompts
# ============================================================
@server.list_prompts()
async def list_prompts() -> List[Prompt]:
    return [
        Prompt(
            name=p["name"],
            description=p["description"],
            arguments=[PromptArgument(**a) for a in p["arguments"]],
        )
        for p in prompts.PROMPT_DEFINITIONS
    ]


@server.get_prompt()
async def get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> GetPromptResult:
    builder = prompts.PROMPT_BUILDERS.get(name)
    if builder is None:
        raise ValueError(f"Unknown prompt: {name}")
    try:
        text = await builder(arguments or {})
    except AppError as e:
        logger.error(f"Prompt {name} failed: {e.message}")
        text = f"Error loading prompt {name}: {e.message}"
    return GetPromptResult(
        description=f"NoteByPine prompt: {name}",
        messages=[PromptMessage(role="user", content=TextContent(type="text", text=text))],
    )


async def main():
    """Run the MCP server over stdio."""
    settings = get_settings()
    configure_logging(settings.log_level, stream=sys.stderr)

    logger.info(f"Starting {SERVER_NAME} {SERVER_VERSION}...")
    logger.info(f"Tools: {', '.join(TOOL_NAMES)}")
    if settings.uses_default_secrets:
        logger.warning("Default credentials in use; set POCKETBASE_ADMIN_PASSWORD and JWT_SECRET_KEY")

    await connect_db()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await close_db()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
