"""
Knowledge-base operations shared by the MCP server and the admin API.
"""
