"""
Code Mode helper layer: typed tool wrappers, call_mcp_tool, routing,
tool discovery, redaction, feedback, audits and skills.

Import submodules directly; this package stays import-light so that the
logging setup can use the redaction helpers without loading the MCP server.
"""
