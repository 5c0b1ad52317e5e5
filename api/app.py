"""HTTP entry point for the supplier risk engine.

The service is stateless: clients post raw rows (and optionally a mapping and
filters) with every request and receive plain JSON views back. Saved mappings
stay with the client.

Run with ``uvicorn api.app:app`` from the repository root so the YAML files
under ``config/`` are found.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import mapping, metrics


app = FastAPI(
    title="Supplier Risk Metrics API",
    version="1.0.0",
    description="Column auto-mapping, supplier risk scores, trends and exception lists for procurement rows.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(mapping.router, prefix="/mapping", tags=["mapping"])
app.include_router(metrics.router, prefix="/metrics", tags=["metrics"])


@app.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
