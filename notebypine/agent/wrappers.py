"""
Typed wrappers around the NoteByPine MCP tools.

Each wrapper packs its arguments into a ToolRequest and hands it to a
ToolInvoker. The invoker decides how the call travels: local_invoker runs
the tool in-process; an MCP client session can be adapted the same way.

Typical usage:
    from notebypine.agent.wrappers import create_incident, local_invoker
    incident = await create_incident(local_invoker, {"title": "...", ...})
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Literal, Optional, Protocol, TypedDict

NOTEBYPINE_SERVER_ID = "notebypine"


@dataclass
class ToolRequest:
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)
    server_id: str = NOTEBYPINE_SERVER_ID


class ToolInvoker(Protocol):
    def __call__(self, request: ToolRequest) -> Awaitable[Any]: ...


# ============================================================
# Argument shapes
# ============================================================
class CreateIncidentInput(TypedDict, total=False):
    title: str
    category: Literal["Backend", "Frontend", "DevOps", "Health", "Finance", "Mobile"]
    description: str
    severity: Literal["low", "medium", "high", "critical"]
    symptoms: str
    context: str
    environment: str
    visibility: Literal["private", "team", "public"]
    frequency: Literal["one-time", "occasional", "frequent", "recurring"]


class SearchIncidentsInput(TypedDict, total=False):
    query: str
    category: str
    severity: str
    status: Literal["open", "investigating", "resolved", "archived"]
    limit: int


class AddSolutionInput(TypedDict, total=False):
    incident_id: str
    solution_title: str
    solution_description: str
    steps: Any  # str or list of str
    resources_needed: str
    time_estimate: str
    warnings: str
    alternatives: str


class ExtractLessonsInput(TypedDict, total=False):
    incident_id: str
    problem_summary: str
    root_cause: str
    prevention: str
    lesson_type: Literal["prevention", "detection", "response", "recovery", "general"]


class GetSimilarIncidentsInput(TypedDict, total=False):
    incident_id: str
    limit: int


class UpdateIncidentStatusInput(TypedDict, total=False):
    incident_id: str
    status: str
    notes: str


class ExportKnowledgeInput(TypedDict, total=False):
    format: Literal["json", "csv", "markdown"]
    filter: Dict[str, str]


# ============================================================
# Invokers
# ============================================================
async def local_invoker(request: ToolRequest) -> Any:
    """Run the tool in this process against the shared PocketBase client."""
    from notebypine.mcp_server import execute_tool
    return await execute_tool(request.tool, dict(request.args))


async def _invoke(invoke: ToolInvoker, tool: str, args: Dict[str, Any],
                  server_id: Optional[str]) -> Any:
    return await invoke(ToolRequest(tool=tool, args=dict(args),
                                    server_id=server_id or NOTEBYPINE_SERVER_ID))


# ============================================================
# Wrappers
# ============================================================
async def create_incident(invoke: ToolInvoker, args: CreateIncidentInput,
                          server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "create_incident", args, server_id)


async def search_incidents(invoke: ToolInvoker, args: SearchIncidentsInput,
                           server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "search_incidents", args, server_id)


async def add_solution(invoke: ToolInvoker, args: AddSolutionInput,
                       server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "add_solution", args, server_id)


async def extract_lessons(invoke: ToolInvoker, args: ExtractLessonsInput,
                          server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "extract_lessons", args, server_id)


async def get_similar_incidents(invoke: ToolInvoker, args: GetSimilarIncidentsInput,
                                server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "get_similar_incidents", args, server_id)


async def update_incident_status(invoke: ToolInvoker, args: UpdateIncidentStatusInput,
                                 server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "update_incident_status", args, server_id)


async def export_knowledge(invoke: ToolInvoker, args: ExportKnowledgeInput,
                           server_id: Optional[str] = None) -> Any:
    return await _invoke(invoke, "export_knowledge", args, server_id)


WRAPPERS = {
    "create_incident": create_incident,
    "search_incidents": search_incidents,
    "add_solution": add_solution,
    "extract_lessons": extract_lessons,
    "get_similar_incidents": get_similar_incidents,
    "update_incident_status": update_incident_status,
    "export_knowledge": export_knowledge,
}


def available_tools() -> List[str]:
    return list(WRAPPERS)
