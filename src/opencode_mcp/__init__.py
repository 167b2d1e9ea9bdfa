"""
Bridge MCP (JSON-RPC sur HTTP / SSE) vers `opencode-cli`.
"""

__version__ = "0.1.0"
