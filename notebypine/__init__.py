"""NoteByPine: incident knowledge base with an admin API, an MCP server and Code Mode helpers."""

__version__ = "1.0.0"
