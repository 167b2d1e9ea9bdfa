"""
Router principal de l'API.
"""
from fastapi import APIRouter

from .routes import mcp, execute, health

# Router principal
api_router = APIRouter()

# Endpoint MCP (JSON-RPC 2.0, réponse JSON ou SSE)
api_router.include_router(mcp.router, prefix="", tags=["mcp"])

# Exécution directe (hors MCP)
api_router.include_router(execute.router, prefix="", tags=["exec"])

api_router.include_router(health.router, prefix="", tags=["health"])
