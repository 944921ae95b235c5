"""
Routing between wrapper ("code") and direct tool invocation.

The routing file (mcp.routing.json by default) decides per server and per
tool whether a call goes through the typed wrapper pipeline (call_mcp_tool:
chunking, redacted summaries) or straight to the tool handler. Wrapper
failures fall back to a direct call when globalSettings.fallbackToDirect is
set. Every routed call is counted in RoutingMetrics.
"""

import importlib
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from notebypine.agent import search_tools
from notebypine.agent.call_tool import MCPToolOptions, MCPToolResult, call_mcp_tool
from notebypine.agent.wrappers import WRAPPERS, NOTEBYPINE_SERVER_ID, ToolInvoker, ToolRequest, local_invoker
from notebypine.config import get_settings

logger = logging.getLogger(__name__)

Mode = Literal["auto", "code", "direct"]


# ============================================================
# Configuration model
# ============================================================
class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Capabilities(_CamelModel):
    supports_wrapper: bool = True
    supports_direct: bool = True
    supports_chunking: bool = True
    supports_redaction: bool = True
    preferred_mode: Literal["code", "direct"] = "code"


class ToolRouting(_CamelModel):
    mode: Mode = "auto"
    wrapper: Optional[str] = None
    chunking: Optional[bool] = None
    redaction: Optional[bool] = None


class ServerConfig(_CamelModel):
    mode: Mode = "code"
    capabilities: Capabilities = Field(default_factory=Capabilities)
    tool_routing: Dict[str, ToolRouting] = Field(default_factory=dict)
    default_options: Dict[str, Any] = Field(default_factory=dict)
    logging: Dict[str, Any] = Field(default_factory=dict)


class GlobalSettings(_CamelModel):
    auto_discovery: bool = True
    prefer_wrapper_routes: bool = True
    fallback_to_direct: bool = True
    enable_metrics: bool = True
    cache_tool_list: bool = True
    cache_ttl: int = Field(300000, alias="cacheTTL")


class DeveloperMode(_CamelModel):
    enabled: bool = False
    verbose_logging: bool = False
    show_routing_decisions: bool = False
    enable_debug_tools: bool = False


class RoutingConfig(_CamelModel):
    version: str = "1.0.0"
    description: str = "Default MCP routing configuration"
    default_mode: Mode = "auto"
    servers: Dict[str, ServerConfig] = Field(default_factory=dict)
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    developer_mode: DeveloperMode = Field(default_factory=DeveloperMode)
    workflow_defaults: Dict[str, Any] = Field(default_factory=dict)


def default_config() -> RoutingConfig:
    return RoutingConfig(
        servers={
            NOTEBYPINE_SERVER_ID: ServerConfig(
                mode="code",
                default_options={
                    "enableChunking": True,
                    "chunkSize": 10,
                    "sampleSize": 5,
                    "verbose": False,
                    "redactSensitive": True,
                },
                logging={"level": "info", "includeTimestamps": True},
            )
        },
        workflow_defaults={"maxIncidentBatchSize": 5, "maxSearchResults": 50},
    )


def load_routing_config(path: Optional[str] = None) -> RoutingConfig:
    """Read the routing file; fall back to defaults if missing or invalid."""
    config_path = Path(path or get_settings().routing_config_path)
    if not config_path.exists():
        logger.warning(f"Routing config not found at {config_path}, using defaults")
        return default_config()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        config = RoutingConfig.model_validate(data)
    except (OSError, ValueError, PydanticValidationError) as e:
        logger.error(f"Failed to load routing config {config_path}: {e}")
        return default_config()
    logger.info(f"Routing configuration loaded from {config_path}")
    return config


def wrapper_exists(ref: Optional[str], tool: Optional[str] = None) -> bool:
    """Whether a wrapper reference resolves.

    A bare name is looked up among the NoteByPine wrappers; "module:attr"
    references are imported.
    """
    if not ref:
        return tool in WRAPPERS if tool else False
    if ":" not in ref:
        return ref in WRAPPERS
    module_name, attr = ref.split(":", 1)
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return False
    return callable(getattr(module, attr, None))


# ============================================================
# Decisions and metrics
# ============================================================
@dataclass
class RouteDecision:
    mode: Literal["code", "direct"]
    method: Literal["wrapper", "mcp"]
    reasoning: str
    wrapper: Optional[str] = None
    options: Optional[Dict[str, Any]] = None


@dataclass
class RoutingMetrics:
    total_calls: int = 0
    wrapper_calls: int = 0
    direct_calls: int = 0
    fallback_calls: int = 0
    errors: int = 0
    average_latency: float = 0.0


def make_routing_decision(server_id: str, tool: str, config: RoutingConfig) -> RouteDecision:
    server = config.servers.get(server_id)
    if server is None:
        return RouteDecision("direct", "mcp",
                             f"Server {server_id} not found in config, falling back to direct MCP")

    routing = server.tool_routing.get(tool)
    if routing is not None:
        if routing.mode == "code" and wrapper_exists(routing.wrapper, tool):
            return RouteDecision("code", "wrapper",
                                 f"Tool-specific routing to wrapper for {tool}",
                                 wrapper=routing.wrapper or tool,
                                 options=routing.model_dump(exclude_none=True))
        if routing.mode == "direct":
            return RouteDecision("direct", "mcp", f"Tool-specific direct routing for {tool}",
                                 options=routing.model_dump(exclude_none=True))

    caps = server.capabilities
    has_wrapper = server_id == NOTEBYPINE_SERVER_ID and tool in WRAPPERS

    if server.mode == "code" and caps.supports_wrapper:
        if has_wrapper:
            return RouteDecision("code", "wrapper",
                                 f"Server-level code mode with available wrapper for {tool}",
                                 wrapper=tool, options=server.default_options)
        if config.global_settings.fallback_to_direct and caps.supports_direct:
            return RouteDecision("direct", "mcp",
                                 f"Wrapper not found for {tool}, falling back to direct MCP",
                                 options=server.default_options)

    if server.mode == "direct" or caps.preferred_mode == "direct":
        return RouteDecision("direct", "mcp", f"Server configured for direct mode for {tool}",
                             options=server.default_options)

    if caps.supports_wrapper and config.global_settings.prefer_wrapper_routes and has_wrapper:
        return RouteDecision("code", "wrapper", f"Auto mode: preferring wrapper for {tool}",
                             wrapper=tool, options=server.default_options)

    return RouteDecision("direct", "mcp", f"Default fallback to direct MCP for {tool}",
                         options=server.default_options)


def _tool_options(options: Optional[Dict[str, Any]]) -> MCPToolOptions:
    """Map camelCase routing options onto MCPToolOptions."""
    opts = MCPToolOptions()
    for key, value in (options or {}).items():
        name = {
            "enableChunking": "enable_chunking",
            "chunking": "enable_chunking",
            "chunkSize": "chunk_size",
            "sampleSize": "sample_size",
            "redactSensitive": "redact_sensitive",
            "redaction": "redact_sensitive",
        }.get(key, key)
        if hasattr(opts, name):
            setattr(opts, name, value)
    return opts


class Router:
    """Routes tool calls and keeps metrics."""

    def __init__(self, config: Optional[RoutingConfig] = None,
                 invoker: ToolInvoker = local_invoker):
        self._config = config
        self.invoker = invoker
        self.metrics = RoutingMetrics()

    @property
    def config(self) -> RoutingConfig:
        if self._config is None:
            self._config = load_routing_config()
        return self._config

    def reload(self, path: Optional[str] = None) -> RoutingConfig:
        self._config = load_routing_config(path)
        return self._config

    def _record_latency(self, latency: float) -> None:
        total = self.metrics.total_calls
        self.metrics.average_latency = (
            (self.metrics.average_latency * (total - 1) + latency) / total
        )

    async def _direct(self, server_id: str, tool: str, args: Dict[str, Any]) -> MCPToolResult:
        start = time.perf_counter()
        try:
            data = await self.invoker(ToolRequest(tool=tool, args=dict(args), server_id=server_id))
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            return MCPToolResult(success=False, error=message,
                                 duration_ms=(time.perf_counter() - start) * 1000)
        return MCPToolResult(success=True, data=data,
                             duration_ms=(time.perf_counter() - start) * 1000)

    async def route_call(self, server_id: str, tool: str, args: Optional[Dict[str, Any]] = None,
                         options: Optional[Dict[str, Any]] = None) -> MCPToolResult:
        """Route one call according to the routing config."""
        args = args or {}
        config = self.config
        start = time.perf_counter()
        self.metrics.total_calls += 1

        decision = make_routing_decision(server_id, tool, config)
        if config.developer_mode.show_routing_decisions:
            logger.info(
                f"Routing decision for {server_id}:{tool}: {decision.mode}/{decision.method} "
                f"({decision.reasoning})"
            )

        if decision.method == "wrapper":
            self.metrics.wrapper_calls += 1
            merged = {**(decision.options or {}), **(options or {})}
            result = await call_mcp_tool(tool, args, _tool_options(merged), self.invoker)
        else:
            self.metrics.direct_calls += 1
            result = await self._direct(server_id, tool, args)

        if not result.success:
            self.metrics.errors += 1
            logger.error(f"Route failed for {server_id}:{tool}: {result.error}")
            if decision.method == "wrapper" and config.global_settings.fallback_to_direct:
                logger.info(f"Attempting fallback to direct call for {tool}")
                self.metrics.fallback_calls += 1
                fallback = await self._direct(server_id, tool, args)
                if fallback.success:
                    result = fallback

        latency = (time.perf_counter() - start) * 1000
        self._record_latency(latency)
        if config.developer_mode.verbose_logging:
            logger.info(f"Route completed in {latency:.0f}ms: {decision.method} for {tool}")
        return result

    def get_metrics(self) -> Dict[str, Any]:
        return asdict(self.metrics)

    def reset_metrics(self) -> None:
        self.metrics = RoutingMetrics()

    def configure(self, **developer_settings: bool) -> None:
        """Update developer-mode flags (verbose_logging, show_routing_decisions, ...)."""
        current = self.config.developer_mode.model_dump()
        current.update(developer_settings)
        self.config.developer_mode = DeveloperMode(**current)
        logger.info(f"Routing configuration updated: {developer_settings}")

    def validate(self) -> Dict[str, Any]:
        return validate_routing_config(self.config)

    def export_metrics(self) -> str:
        """Plain-text metrics report."""
        m = self.metrics
        validation = self.validate()

        def pct(n: int) -> str:
            return f"{(n / m.total_calls * 100):.1f}%" if m.total_calls else "0.0%"

        lines = [
            "Routing Metrics Report:",
            f"Total Calls: {m.total_calls}",
            f"Wrapper Calls: {m.wrapper_calls} ({pct(m.wrapper_calls)})",
            f"Direct Calls: {m.direct_calls} ({pct(m.direct_calls)})",
            f"Fallback Calls: {m.fallback_calls}",
            f"Errors: {m.errors}",
            f"Average Latency: {m.average_latency:.2f}ms",
            "",
            f"Configuration Status: {'Valid' if validation['valid'] else 'Invalid'}",
        ]
        if validation["errors"]:
            lines.append("Errors:")
            lines.extend(validation["errors"])
        lines.append(f"Developer Mode: {'Enabled' if self.config.developer_mode.enabled else 'Disabled'}")
        lines.append(f"Metrics Enabled: {'Yes' if self.config.global_settings.enable_metrics else 'No'}")
        return "\n".join(lines)


def validate_routing_config(config: RoutingConfig) -> Dict[str, Any]:
    errors: List[str] = []
    if not config.version:
        errors.append("Missing version")
    if not config.servers:
        errors.append("Missing servers configuration")
    for server_id, server in config.servers.items():
        for tool, routing in server.tool_routing.items():
            if routing.wrapper and not wrapper_exists(routing.wrapper):
                errors.append(
                    f"Server {server_id}, tool {tool}: wrapper not found: {routing.wrapper}"
                )
    return {"valid": not errors, "errors": errors}


def discover_tools(query: Optional[str] = None) -> List[Dict[str, Any]]:
    if query:
        return [asdict(r) for r in search_tools.search_tools(query, max_results=20)]
    return search_tools.get_all_tools()


def get_workflow_suggestions(task_description: str) -> Dict[str, Any]:
    return search_tools.find_tools_for_task(task_description)


# Shared router used by the CLI and skills
router = Router()


async def route_call(server_id: str, tool: str, args: Optional[Dict[str, Any]] = None,
                     options: Optional[Dict[str, Any]] = None) -> MCPToolResult:
    return await router.route_call(server_id, tool, args, options)
