"""
Keyword-based discovery of the NoteByPine tools.

Relevance weights: exact name 1.0, each query word found in the name 0.8,
whole query in the description 0.6, each keyword hit 0.4, query in the
reference doc path 0.2. Scores are capped at 1.0.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

NAME_EXACT = 1.0
NAME_PARTIAL = 0.8
DESCRIPTION_MATCH = 0.6
KEYWORD_MATCH = 0.4
SPEC_PATH_MATCH = 0.2


@dataclass
class ToolInfo:
    name: str
    description: str
    spec_path: str
    keywords: List[str] = field(default_factory=list)


@dataclass
class SearchResult:
    tool: ToolInfo
    relevance_score: float
    matched_keywords: List[str] = field(default_factory=list)


def _tool(name: str, description: str, keywords: List[str]) -> ToolInfo:
    return ToolInfo(name, description, f"docs/specs/tools/{name}.md", keywords)


TOOL_CATALOG: List[ToolInfo] = [
    _tool("create_incident",
          "Create a structured incident record and surface the new PocketBase ID.",
          ["create", "incident", "record", "new", "pocketbase", "id", "ticket", "issue"]),
    _tool("search_incidents",
          "Search incidents with keyword and enum filters for rapid triage.",
          ["search", "incidents", "find", "filter", "keyword", "triage", "query", "lookup"]),
    _tool("add_solution",
          "Attach a solution record with step-by-step remediation details.",
          ["add", "solution", "remediation", "fix", "resolve", "steps", "attach", "record"]),
    _tool("extract_lessons",
          "Log a lessons-learned entry and update the source incident root cause.",
          ["extract", "lessons", "learned", "root", "cause", "analysis", "retrospective", "post-mortem"]),
    _tool("get_similar_incidents",
          "Suggest incidents with overlapping signals to reuse fixes.",
          ["similar", "incidents", "related", "duplicate", "overlap", "signals", "reuse", "suggestions"]),
    _tool("update_incident_status",
          "Move an incident through its lifecycle and record resolution timestamps.",
          ["update", "status", "lifecycle", "state", "transition", "resolve", "close", "archive"]),
    _tool("export_knowledge",
          "Export the knowledge base in JSON, CSV, or Markdown for sharing.",
          ["export", "knowledge", "base", "json", "csv", "markdown", "share", "download", "backup"]),
]

TOOL_CATEGORIES = {
    "incident": ["create_incident", "search_incidents", "get_similar_incidents", "update_incident_status"],
    "solution": ["add_solution"],
    "analysis": ["extract_lessons", "get_similar_incidents"],
    "export": ["export_knowledge"],
    "search": ["search_incidents", "get_similar_incidents"],
    "management": ["create_incident", "update_incident_status", "add_solution"],
}

WORKFLOWS = {
    "incident_response": ["create_incident", "search_incidents", "add_solution", "extract_lessons"],
    "knowledge_management": ["export_knowledge", "search_incidents", "extract_lessons"],
    "triage": ["search_incidents", "get_similar_incidents", "create_incident"],
    "resolution": ["add_solution", "update_incident_status", "extract_lessons"],
    "analysis": ["get_similar_incidents", "extract_lessons", "search_incidents"],
}


def relevance_score(query: str, tool: ToolInfo, matched: Optional[List[str]] = None) -> float:
    """Score one tool against a query; keyword hits are appended to matched."""
    query = query.lower().strip()
    words = [w for w in query.split() if len(w) > 1]
    name = tool.name.lower()
    score = 0.0

    if name == query:
        score += NAME_EXACT
    score += NAME_PARTIAL * sum(1 for w in words if w in name)
    if query in tool.description.lower():
        score += DESCRIPTION_MATCH
    for keyword in tool.keywords:
        for w in words:
            if w in keyword.lower():
                score += KEYWORD_MATCH
                if matched is not None:
                    matched.append(keyword)
    if query in tool.spec_path.lower():
        score += SPEC_PATH_MATCH

    return min(score, 1.0)


def search_tools(query: str, min_score: float = 0.1, max_results: int = 10) -> List[SearchResult]:
    """Rank catalog tools by relevance, highest first."""
    if not query or not query.strip():
        return []
    results = []
    for tool in TOOL_CATALOG:
        matched: List[str] = []
        score = relevance_score(query, tool, matched)
        if score >= min_score:
            results.append(SearchResult(tool, score, list(dict.fromkeys(matched))))
    results.sort(key=lambda r: r.relevance_score, reverse=True)
    return results[:max_results]


def get_all_tools() -> List[Dict[str, Any]]:
    return [asdict(t) for t in TOOL_CATALOG]


def get_tool_by_name(name: str) -> Optional[ToolInfo]:
    return next((t for t in TOOL_CATALOG if t.name.lower() == name.lower()), None)


def _by_names(names: List[str]) -> List[ToolInfo]:
    return [t for t in TOOL_CATALOG if t.name in names]


def get_tools_by_category(category: str) -> List[ToolInfo]:
    return _by_names(TOOL_CATEGORIES.get(category.lower(), []))


def get_workflow_tools(workflow: str) -> List[ToolInfo]:
    return _by_names(WORKFLOWS.get(workflow.lower(), []))


def format_search_results(results: List[SearchResult]) -> str:
    if not results:
        return "No tools found matching your query."
    lines = [f"Found {len(results)} tool(s):", ""]
    for n, r in enumerate(results, 1):
        lines.append(f"{n}. {r.tool.name} (relevance: {r.relevance_score * 100:.1f}%)")
        lines.append(f"   {r.tool.description}")
        if r.matched_keywords:
            lines.append(f"   Matched keywords: {', '.join(r.matched_keywords)}")
        lines.append(f"   Spec: {r.tool.spec_path}")
        lines.append("")
    return "\n".join(lines)


def find_tools_for_task(task_description: str) -> Dict[str, Any]:
    """Pick primary and secondary tools for a free-text task."""
    task = task_description.lower()
    secondary: List[str] = []

    if "create" in task and "incident" in task:
        primary = ["create_incident"]
        secondary = ["search_incidents"]
        reasoning = "Creating a new incident record. You may want to search first to avoid duplicates."
    elif "search" in task or "find" in task:
        primary = ["search_incidents"]
        if "similar" in task or "related" in task:
            primary.append("get_similar_incidents")
        reasoning = "Searching for existing incidents to find relevant information."
    elif "solution" in task or "fix" in task or "resolve" in task:
        primary = ["add_solution"]
        secondary = ["search_incidents"]
        reasoning = "Adding a solution to an existing incident. You may need to search for the incident first."
    elif "export" in task or "backup" in task or "share" in task:
        primary = ["export_knowledge"]
        reasoning = "Exporting knowledge base for sharing or backup."
    elif "analyze" in task or "lessons" in task or "retrospective" in task:
        primary = ["extract_lessons"]
        secondary = ["search_incidents"]
        reasoning = "Analyzing incidents to extract lessons learned."
    else:
        primary = ["search_incidents"]
        reasoning = "Starting with search to understand existing incidents before taking action."

    return {
        "primary_tools": [get_tool_by_name(n) for n in primary],
        "secondary_tools": [get_tool_by_name(n) for n in secondary],
        "reasoning": reasoning,
    }
