"""
System routes: root info and liveness. The MCP endpoint itself is mounted in main.
"""

from fastapi import APIRouter

router = APIRouter()


@router.get("/", tags=["system"])
def root():
    return {"status": "ok", "hint": "MCP endpoint: POST /mcp ; health: /health"}


@router.get("/health", tags=["system"])
def health():
    return {"status": "ok"}
