"""
Multi-step agent workflows built on call_mcp_tool.
"""
