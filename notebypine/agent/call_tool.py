"""
call_mcp_tool: invoke a tool wrapper with logging, sampling, chunking and
redaction, and report the outcome as an MCPToolResult instead of raising.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from notebypine.agent.redact import redact_args, redact_json
from notebypine.agent.wrappers import WRAPPERS, ToolInvoker, local_invoker

logger = logging.getLogger(__name__)


@dataclass
class MCPToolOptions:
    enable_chunking: bool = True
    chunk_size: int = 10
    sample_size: int = 5
    verbose: bool = False
    redact_sensitive: bool = True


@dataclass
class MCPToolResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    summary: Optional[str] = None
    chunks: Optional[List[List[Any]]] = None
    total_items: Optional[int] = None
    duration_ms: float = 0.0


@dataclass
class ToolCall:
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)
    options: Optional[MCPToolOptions] = None


def create_summary(data: Any, sample_size: int = 5, redact: bool = True) -> str:
    """Short, optionally redacted description of a result for logs."""
    if data is None or data == "" or data == {}:
        return "No data returned"

    processed = redact_args(data) if redact else data

    if isinstance(processed, list):
        total = len(processed)
        if total == 0:
            return "Empty array returned"
        sample = processed[:sample_size]
        preview = "\n".join(
            json.dumps(item, indent=2, default=str) if isinstance(item, (dict, list)) else str(item)
            for item in sample
        )
        more = "\n... (more items truncated)" if total > sample_size else ""
        return f"Array with {total} items. Sample ({min(sample_size, total)} items):\n{preview}{more}"

    if isinstance(processed, dict):
        preview = json.dumps(processed, indent=2, default=str)
        lines = preview.split("\n")
        if len(lines) > sample_size * 2:
            head = "\n".join(lines[:sample_size * 2])
            return f"Object with {len(processed)} keys. Preview:\n{head}\n... (truncated)"
        return f"Object:\n{preview}"

    return f"Data: {processed}"


def chunk_list(items: List[Any], chunk_size: int) -> List[List[Any]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]


def _sensitive_arg_names(args: Dict[str, Any]) -> bool:
    text = json.dumps(args, default=str).lower()
    return any(word in text for word in ("password", "secret", "token"))


async def call_mcp_tool(
    tool: str,
    args: Optional[Dict[str, Any]] = None,
    options: Optional[MCPToolOptions] = None,
    invoker: ToolInvoker = local_invoker,
) -> MCPToolResult:
    """Call a NoteByPine tool through its wrapper.

    List results, and the ``items`` list of dict results, are split into
    chunks of ``chunk_size``. Failures come back as success=False.
    """
    opts = options or MCPToolOptions()
    args = args or {}
    start = time.perf_counter()

    logger.info(f"[MCP] Calling tool: {tool}")
    if opts.verbose:
        args_text = redact_json(args) if opts.redact_sensitive else json.dumps(args, indent=2, default=str)
        logger.info(f"[MCP] Args: {args_text}")
    else:
        logger.info(f"[MCP] Args: {', '.join(args)}")
        if opts.redact_sensitive and _sensitive_arg_names(args):
            logger.info("[MCP] Sensitive data detected and redacted")

    wrapper = WRAPPERS.get(tool)
    try:
        if wrapper is None:
            raise ValueError(f"Unknown tool: {tool}")
        result = await wrapper(invoker, args)
    except Exception as e:
        duration = (time.perf_counter() - start) * 1000
        message = getattr(e, "message", None) or str(e)
        logger.error(f"[MCP] Tool {tool} failed in {duration:.0f}ms: {message}")
        return MCPToolResult(success=False, error=message, duration_ms=duration)

    duration = (time.perf_counter() - start) * 1000
    logger.info(f"[MCP] Tool {tool} completed in {duration:.0f}ms")

    items = None
    if isinstance(result, list):
        items = result
    elif isinstance(result, dict) and isinstance(result.get("items"), list):
        items = result["items"]

    chunks = None
    total_items = None
    summary_source = result
    if opts.enable_chunking and items is not None:
        total_items = len(items)
        chunks = chunk_list(items, opts.chunk_size)
        if not opts.verbose and total_items > opts.sample_size:
            summary_source = items[:opts.sample_size]

    summary = create_summary(summary_source, opts.sample_size, opts.redact_sensitive)
    logger.info(f"[MCP] Result summary for {tool}:\n{summary}")

    return MCPToolResult(
        success=True,
        data=result,
        summary=summary,
        chunks=chunks,
        total_items=total_items,
        duration_ms=duration,
    )


async def batch_call_mcp_tools(calls: List[ToolCall],
                               invoker: ToolInvoker = local_invoker) -> List[MCPToolResult]:
    """Run several tool calls concurrently; results keep the input order."""
    logger.info(f"[MCP] Batch calling {len(calls)} tools")
    results = await asyncio.gather(*(
        call_mcp_tool(c.tool, c.args, c.options, invoker) for c in calls
    ))
    successes = sum(1 for r in results if r.success)
    logger.info(f"[MCP] Batch completed: {successes}/{len(calls)} successful")
    return list(results)


def get_available_tools() -> List[str]:
    return list(WRAPPERS)
