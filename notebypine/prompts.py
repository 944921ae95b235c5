"""
Prompt templates served by the MCP server.

Each builder pulls live context from PocketBase (matching incidents, existing
solutions and lessons, breakdowns) and returns the finished prompt text.
"""

import json
import logging
from collections import Counter
from typing import Dict, List, Optional

from notebypine.database import get_database
from notebypine.knowledge.incidents import get_incident
from notebypine.knowledge.lessons import get_lessons_for_incident
from notebypine.knowledge.solutions import get_solutions_for_incident
from notebypine.models.incident import Incident
from notebypine.pocketbase import pb_eq, pb_in, pb_like, pb_or
from notebypine.queries import INCIDENTS, SOLUTIONS
from notebypine.utils.errors import ValidationError, pocketbase_errors

logger = logging.getLogger(__name__)

PROMPT_DEFINITIONS = [
    {
        "name": "troubleshoot",
        "description": "Guide user through problem diagnosis using knowledge base",
        "arguments": [
            {"name": "problem_description", "description": "Description of the problem to troubleshoot", "required": True},
        ],
    },
    {
        "name": "document_solution",
        "description": "Help extract and document a solution from a resolved incident",
        "arguments": [
            {"name": "incident_id", "description": "ID of the incident to document", "required": True},
        ],
    },
    {
        "name": "analyze_pattern",
        "description": "Identify recurring issues and patterns in the knowledge base",
        "arguments": [
            {"name": "category", "description": "Optional category to analyze (leave empty for all)", "required": False},
        ],
    },
]


def _truncate(text: str, length: int = 200) -> str:
    return text if len(text) <= length else text[:length] + "..."


async def troubleshoot(problem_description: Optional[str]) -> str:
    if not problem_description:
        raise ValidationError("problem_description is required")

    pb = get_database()
    with pocketbase_errors("Incident"):
        data = await pb.list_records(
            INCIDENTS,
            filter=pb_or(
                pb_like("title", problem_description),
                pb_like("description", problem_description),
            ),
            per_page=5,
        )
        similar = data.get("items", [])
        solutions = []
        if similar:
            sol_data = await pb.list_records(
                SOLUTIONS, filter=pb_in("incident_id", [i["id"] for i in similar]), per_page=5
            )
            solutions = sol_data.get("items", [])

    if similar:
        incidents_text = "\n".join(
            f"- **{i['title']}** ({i['category']}, {i['severity']} severity)\n"
            f"  {_truncate(i.get('description', ''))}\n"
            f"  Status: {i.get('status', 'open')} | ID: {i['id']}"
            for i in similar
        )
    else:
        incidents_text = "No similar incidents found in knowledge base."

    if solutions:
        solutions_text = "\n".join(
            f"- **{s['solution_title']}**\n"
            f"  {_truncate(s.get('solution_description', ''))}\n"
            f"  Incident ID: {s['incident_id']}"
            for s in solutions
        )
    else:
        solutions_text = "No solutions found yet."

    return f"""You are an expert troubleshooting assistant helping the user solve a technical problem.

**Current Problem:**
{problem_description}

**Similar Incidents from Knowledge Base:**
{incidents_text}

**Related Solutions:**
{solutions_text}

**Troubleshooting Process:**
1. **Understand the Problem**
   - Ask clarifying questions about symptoms, environment, and recent changes
   - Gather technical details (error messages, logs, system info)
2. **Compare with Past Incidents**
   - Review similar incidents above
   - Identify patterns or common solutions
3. **Systematic Diagnosis**
   - Propose step-by-step troubleshooting steps
   - Suggest verification methods at each step
4. **Solution Documentation**
   - If a solution is found, suggest recording it with add_solution
   - Recommend preventive measures

Please guide the user through this troubleshooting process systematically."""


async def document_solution(incident_id: Optional[str]) -> str:
    if not incident_id:
        raise ValidationError("incident_id is required")

    incident = await get_incident(incident_id)
    solutions = await get_solutions_for_incident(incident_id, limit=5)
    lessons = await get_lessons_for_incident(incident_id, limit=5)

    solutions_text = "\n".join(
        f"- **{s.solution_title}**\n  {s.solution_description}\n  Steps: {s.steps or 'Not documented'}"
        for s in solutions
    ) or "No solutions documented yet."
    lessons_text = "\n".join(
        f"- **Lesson Type:** {l.lesson_type}\n  {l.lesson_text}" for l in lessons
    ) or "No lessons learned documented yet."

    return f"""You are helping document a comprehensive solution for a resolved technical incident.

**Incident Details:**
- **Title:** {incident.title}
- **Category:** {incident.category}
- **Severity:** {incident.severity}
- **Status:** {incident.status}
- **Description:** {incident.description}
- **Symptoms:** {incident.symptoms or 'Not documented'}
- **Context:** {incident.context or 'Not documented'}
- **Environment:** {incident.environment or 'Not documented'}
- **Root Cause:** {incident.root_cause or 'Not yet identified'}

**Existing Solutions:**
{solutions_text}

**Existing Lessons Learned:**
{lessons_text}

**Documentation Process:**
1. **Extract the Solution**: the exact fix, the steps taken and the key diagnostic insights
2. **Create Step-by-Step Guide**: clear actionable steps with verification and prerequisites
3. **Document Context and Conditions**: when the solution applies and which environment factors matter
4. **Extract Lessons Learned**: cause, prevention, and monitoring that would have caught it
5. **Suggest Improvements**: more robust fixes and alternative approaches

Record the result with add_solution and extract_lessons so it is available for future troubleshooting."""


def _breakdown(incidents: List[Incident], field: str) -> Dict[str, int]:
    return dict(Counter(getattr(i, field) for i in incidents))


async def analyze_pattern(category: Optional[str] = None) -> str:
    pb = get_database()
    with pocketbase_errors("Incident"):
        data = await pb.list_records(
            INCIDENTS, filter=pb_eq("category", category) if category else None, per_page=100
        )
        incidents = [Incident(**item) for item in data.get("items", [])]
        solution_total = 0
        if incidents:
            sol_data = await pb.list_records(
                SOLUTIONS, filter=pb_in("incident_id", [i.id for i in incidents]),
                per_page=1, fields=["id"],
            )
            solution_total = sol_data.get("totalItems", 0)

    unresolved = [i for i in incidents if i.status not in ("resolved", "archived")]
    recent = "\n".join(
        f"- **{i.title}** ({i.category}, {i.severity}) - {i.status}" for i in incidents[:10]
    ) or "No incidents recorded."

    return f"""You are analyzing patterns in the technical incident knowledge base to identify trends and improvement opportunities.

**Analysis Scope:**
{f'Category: {category}' if category else 'All categories'}
- **Total Incidents:** {len(incidents)}
- **Total Solutions:** {solution_total}
- **Unresolved Incidents:** {len(unresolved)}

**Incident Breakdown:**
- **By Category:** {json.dumps(_breakdown(incidents, 'category'))}
- **By Severity:** {json.dumps(_breakdown(incidents, 'severity'))}
- **By Status:** {json.dumps(_breakdown(incidents, 'status'))}

**Recent Incidents (Last 10):**
{recent}

**Analysis Framework:**
1. **Identify Recurring Problems**: frequent issues and the categories with the most incidents
2. **Root Cause Patterns**: common underlying causes and why they were not caught earlier
3. **Solution Effectiveness**: gaps in solution coverage and reuse of existing fixes
4. **Process Improvements**: preventive measures, monitoring and alerting opportunities
5. **Knowledge Base Health**: categorization quality and balance between incidents and solutions

Please provide a comprehensive analysis with actionable insights."""


PROMPT_BUILDERS = {
    "troubleshoot": lambda args: troubleshoot(args.get("problem_description")),
    "document_solution": lambda args: document_solution(args.get("incident_id")),
    "analyze_pattern": lambda args: analyze_pattern(args.get("category") or None),
}
