"""
NoteByPine command line.

    notebypine api                      run the admin REST API
    notebypine mcp                      run the MCP server on stdio
    notebypine validate                 check config, routing file and PocketBase
    notebypine metrics                  routing config analysis and feedback metrics
    notebypine triage app.log           create incidents from a log file
    notebypine export --format csv      export the knowledge base to out/exports
    notebypine feedback quick slow "search takes 5s"
    notebypine audit run
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from notebypine.config import PROJECT_ROOT, get_settings
from notebypine.utils.log import configure_logging

logger = logging.getLogger(__name__)

REQUIRED_FILES = ("README.md", "AGENTS.md", "mcp.routing.json")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="notebypine",
        description="NoteByPine incident knowledge base",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # -- api / mcp ------------------------------------------------------
    sub.add_parser("api", help="Run the admin REST API")
    sub.add_parser("mcp", help="Run the MCP server over stdio")

    # -- validate -------------------------------------------------------
    p_validate = sub.add_parser("validate", help="Validate configuration and connectivity")
    p_validate.add_argument("--skip-db", action="store_true", help="Do not contact PocketBase")

    # -- metrics --------------------------------------------------------
    sub.add_parser("metrics", help="Show routing configuration analysis and feedback metrics")

    # -- triage ---------------------------------------------------------
    p_triage = sub.add_parser("triage", help="Create incidents from a log file")
    p_triage.add_argument("file", help="Log file to triage")
    p_triage.add_argument("--format", default="text",
                          choices=["text", "json", "apache", "nginx"])
    p_triage.add_argument("--minutes", type=int, default=None,
                          help="Only consider entries from the last N minutes")
    p_triage.add_argument("--max-incidents", type=int, default=5)

    # -- export ---------------------------------------------------------
    p_export = sub.add_parser("export", help="Export the knowledge base to a file")
    p_export.add_argument("--format", default="json", choices=["json", "markdown", "csv"])
    p_export.add_argument("--category", default=None)
    p_export.add_argument("--status", default=None)
    p_export.add_argument("--severity", default=None)
    p_export.add_argument("--output", default=None, help="Output file path")
    p_export.add_argument("--csv", action="store_true", help="Also write a records CSV")
    p_export.add_argument("--schedule", default=None, choices=["daily", "weekly", "monthly"])

    # -- feedback -------------------------------------------------------
    p_feedback = sub.add_parser("feedback", help="Code Mode feedback")
    fb_sub = p_feedback.add_subparsers(dest="feedback_command")
    p_quick = fb_sub.add_parser("quick", help="Submit quick feedback")
    p_quick.add_argument("type", help="slow, confusing, error or missing-feature")
    p_quick.add_argument("details")
    fb_sub.add_parser("report", help="Print the feedback report")
    fb_sub.add_parser("metrics", help="Print feedback metrics as JSON")
    p_resolve = fb_sub.add_parser("resolve", help="Mark feedback as resolved")
    p_resolve.add_argument("id")
    p_resolve.add_argument("notes")

    # -- audit ----------------------------------------------------------
    p_audit = sub.add_parser("audit", help="Code Mode compliance audits")
    audit_sub = p_audit.add_subparsers(dest="audit_command")
    audit_sub.add_parser("run", help="Run all audits")
    audit_sub.add_parser("report", help="Print the latest compliance report")
    p_schedule = audit_sub.add_parser("schedule", help="Schedule recurring audits")
    p_schedule.add_argument("--days", type=int, default=30)
    audit_sub.add_parser("status", help="Show whether an audit is due")

    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else get_settings().log_level, stream=sys.stderr)

    handlers = {
        "api": _cmd_api,
        "mcp": _cmd_mcp,
        "validate": _cmd_validate,
        "metrics": _cmd_metrics,
        "triage": _cmd_triage,
        "export": _cmd_export,
        "feedback": _cmd_feedback,
        "audit": _cmd_audit,
    }
    handler: Optional[Callable[[argparse.Namespace], int]] = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


# -- server commands ----------------------------------------------------

def _cmd_api(args) -> int:
    from notebypine.main import run

    run()
    return 0


def _cmd_mcp(args) -> int:
    from notebypine.mcp_server import run

    run()
    return 0


# -- validate -----------------------------------------------------------

def _cmd_validate(args) -> int:
    from notebypine.agent.router import load_routing_config, validate_routing_config

    settings = get_settings()
    problems = 0

    print("Configuration")
    print(f"  PocketBase URL: {settings.pocketbase_url}")
    print(f"  Data directory: {settings.data_path}")
    if settings.uses_default_secrets:
        print("  WARNING: default JWT secret or admin password in use")

    print("Required files")
    for name in REQUIRED_FILES:
        present = (PROJECT_ROOT / name).exists()
        print(f"  {'ok' if present else 'MISSING'}  {name}")
        problems += 0 if present else 1

    routing_path = Path(settings.routing_config_path)
    if not routing_path.is_absolute():
        routing_path = PROJECT_ROOT / routing_path
    config = load_routing_config(str(routing_path))
    validation = validate_routing_config(config)
    print("Routing configuration")
    print(f"  {'valid' if validation['valid'] else 'invalid'}  {routing_path}")
    for error in validation["errors"]:
        print(f"    - {error}")
        problems += 1

    server = config.servers.get("notebypine")
    if server is None:
        print("  MISSING  notebypine server entry")
        problems += 1
    else:
        checks = [
            ("mode is code", server.mode == "code"),
            ("supportsWrapper enabled", server.capabilities.supports_wrapper),
            ("preferWrapperRoutes enabled", config.global_settings.prefer_wrapper_routes),
        ]
        for label, ok in checks:
            print(f"  {'ok' if ok else 'WARN'}  {label}")

    if not args.skip_db:
        health = asyncio.run(_check_pocketbase())
        print("PocketBase")
        if health["healthy"]:
            print(f"  ok  reachable ({health['response_time_ms']}ms)")
        else:
            print(f"  FAIL  {health['error']}")
            problems += 1

    print("Validation passed" if problems == 0 else f"Validation found {problems} problem(s)")
    return 0 if problems == 0 else 1


async def _check_pocketbase() -> dict:
    from notebypine.database import close_db, connect_db
    from notebypine.queries import check_database_health

    await connect_db()
    try:
        return await check_database_health()
    finally:
        await close_db()


# -- metrics ------------------------------------------------------------

def _cmd_metrics(args) -> int:
    from notebypine.agent.feedback import FeedbackSystem
    from notebypine.agent.router import router
    from notebypine.agent.search_tools import get_all_tools

    print(router.export_metrics())
    print()

    config = router.config
    print("Routing Configuration Analysis:")
    print(f"  Default mode: {config.default_mode}")
    for server_id, server in config.servers.items():
        print(f"  {server_id}: mode={server.mode}, "
              f"wrapper={'yes' if server.capabilities.supports_wrapper else 'no'}, "
              f"tool overrides={len(server.tool_routing)}")
    print(f"  Fallback to direct: {'yes' if config.global_settings.fallback_to_direct else 'no'}")
    print()

    tools = get_all_tools()
    print(f"Tool Inventory: {len(tools)} tools")
    for tool in tools:
        print(f"  {tool['name']}: {tool['description']}")
    print()

    print("Feedback Metrics:")
    print(json.dumps(FeedbackSystem().metrics(), indent=2))
    return 0


# -- triage / export ----------------------------------------------------

def _cmd_triage(args) -> int:
    from notebypine.agent.skills.triage import TriageConfig

    path = Path(args.file)
    if not path.is_file():
        print(f"Log file not found: {path}", file=sys.stderr)
        return 1
    content = path.read_text(encoding="utf-8", errors="replace")
    config = TriageConfig(max_incidents_per_batch=args.max_incidents)

    result = asyncio.run(_run_triage(content, config, args.format, args.minutes))
    print(result.summary)
    return 0 if not result.errors else 1


async def _run_triage(content: str, config, log_format: str, minutes: Optional[int]):
    from notebypine.agent.skills.triage import triage_from_logfile, triage_recent_errors
    from notebypine.database import close_db, connect_db

    await connect_db()
    try:
        if minutes is not None:
            return await triage_recent_errors(content, minutes, config, log_format)
        return await triage_from_logfile(content, config, log_format)
    finally:
        await close_db()


def _cmd_export(args) -> int:
    filters = {k: getattr(args, k) for k in ("category", "status", "severity") if getattr(args, k)}
    result = asyncio.run(_run_export(args.format, filters, args.output, args.csv, args.schedule))
    print(result.summary)
    return 0 if result.success else 1


async def _run_export(format: str, filters: dict, output: Optional[str],
                      include_csv: bool, schedule: Optional[str]):
    from notebypine.agent.skills.export_publish import export_and_publish
    from notebypine.database import close_db, connect_db

    await connect_db()
    try:
        return await export_and_publish(
            format=format,
            filters=filters or None,
            output_path=output,
            include_csv=include_csv,
            schedule=schedule,
        )
    finally:
        await close_db()


# -- feedback -----------------------------------------------------------

def _cmd_feedback(args) -> int:
    from notebypine.agent.feedback import FeedbackSystem

    system = FeedbackSystem()
    command = args.feedback_command
    if command == "quick":
        try:
            feedback_id = system.submit_quick(args.type, args.details)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 1
        print(f"Feedback submitted: {feedback_id}")
    elif command == "report":
        print(system.report())
    elif command == "metrics":
        print(json.dumps(system.metrics(), indent=2))
    elif command == "resolve":
        if not system.resolve(args.id, args.notes):
            print(f"Feedback entry not found: {args.id}", file=sys.stderr)
            return 1
        print(f"Feedback resolved: {args.id}")
    else:
        print("Usage: notebypine feedback {quick,report,metrics,resolve}", file=sys.stderr)
        return 1
    return 0


# -- audit --------------------------------------------------------------

def _cmd_audit(args) -> int:
    from notebypine.agent.auditor import (
        CodeModeAuditor,
        format_audit_summary,
        format_compliance_report,
    )

    auditor = CodeModeAuditor()
    command = args.audit_command
    if command == "run":
        results = auditor.run_full_audit()
        print(format_audit_summary(results))
        return 0 if all(r.status != "fail" for r in results) else 1
    if command == "report":
        print(format_compliance_report(auditor.get_compliance_report()))
    elif command == "schedule":
        schedule = auditor.schedule_audit(args.days)
        print(f"Audits scheduled every {args.days} days, next run {schedule['next_audit']}")
    elif command == "status":
        print("Audit due" if auditor.is_audit_due() else "No audit due")
    else:
        print("Usage: notebypine audit {run,report,schedule,status}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
