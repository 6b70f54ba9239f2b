"""Health check and oracle connection check endpoints."""

import httpx
from fastapi import APIRouter

from red_truth.config import load_config

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/check-connection")
async def check_connection():
    """Quick reachability check against the configured oracle backend."""
    config = load_config()
    url = config["oracle_url"].rstrip("/")
    if config["oracle_format"] == "openai":
        url += "/v1/models"
    else:
        url += "/api/v1/model"
    headers: dict[str, str] = {}
    if config["oracle_api_key"]:
        headers["Authorization"] = f"Bearer {config['oracle_api_key']}"
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(url, headers=headers)
            resp.raise_for_status()
        return {"ok": True}
    except httpx.HTTPError:
        return {"ok": False}
