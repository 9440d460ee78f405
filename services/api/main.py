"""
Digest Themes API - FastAPI backend for theme clustering and admin regeneration
"""

from datetime import datetime
from typing import Any, Optional

import httpx
import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from services.pipeline.theme_labels import (
    ClientFactory,
    cluster_items_with_existing_vectors,
    cluster_triage_themes,
)
from services.theme_cluster.embedder import (
    EmbeddingsConfigError,
    EmbeddingsProviderError,
    create_env_embeddings_client,
)
from services.theme_cluster.overrides import apply_theme_label_overrides
from shared.schemas.theme import (
    SeedCluster,
    ThemeClusterInput,
    ThemeClusterResult,
    ThemeVectorInput,
)
from shared.schemas.tuning import ThemeTuning, validate_theme_tuning

logger = structlog.get_logger()

app = FastAPI(
    title="Digest Themes API",
    description="Theme clustering for digest triage topics",
    version="0.1.0"
)

# CORS for admin UI access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_client_factory() -> ClientFactory:
    """Embedding client factory (overridden in tests)."""
    return create_env_embeddings_client


# ============================================================================
# Models
# ============================================================================

class ClusterThemesRequest(BaseModel):
    items: list[ThemeClusterInput]
    tier: str = "normal"
    threshold: Optional[float] = None
    seeds: list[SeedCluster] = Field(default_factory=list)
    tuning: Optional[dict[str, Any]] = Field(
        None, description="Raw theme tuning settings for the topic"
    )


class ClusterThemesResponse(BaseModel):
    ok: bool = True
    message: Optional[str] = None
    result: Optional[ThemeClusterResult] = None


class ReclusterRequest(BaseModel):
    items: list[ThemeVectorInput]
    threshold: Optional[float] = None


class ReclusterResponse(BaseModel):
    labels: dict[str, str]
    regenerated: int


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}


@app.post("/api/themes/cluster", response_model=ClusterThemesResponse)
async def cluster_themes(
    request: ClusterThemesRequest,
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """
    Cluster triage topics into theme labels.
    Tuning (threshold, override knobs) comes from the topic's settings when given;
    an explicit threshold wins.
    """
    errors = validate_theme_tuning(request.tuning)
    if errors:
        raise HTTPException(status_code=400, detail={"code": "INVALID_TUNING", "errors": errors})

    tuning = ThemeTuning.parse(request.tuning) if request.tuning is not None else None
    if tuning is not None and not tuning.enabled:
        return ClusterThemesResponse(
            message="Theme grouping is disabled for this topic. No changes applied.",
        )

    threshold = request.threshold
    if threshold is None and tuning is not None:
        threshold = tuning.similarity_threshold

    try:
        result = await cluster_triage_themes(
            request.items,
            tier=request.tier,
            threshold=threshold,
            seeds=request.seeds,
            client_factory=client_factory,
        )
    except EmbeddingsConfigError as e:
        logger.error("Embeddings misconfigured", tier=request.tier, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    except (EmbeddingsProviderError, httpx.HTTPError) as e:
        logger.error("Theme clustering failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    if tuning is not None:
        result = apply_theme_label_overrides(result, tuning.override_options())

    return ClusterThemesResponse(
        message=f"Clustered {len(result.items)} items into {result.stats.cluster_count} themes.",
        result=result,
    )


@app.post("/api/themes/recluster", response_model=ReclusterResponse)
async def recluster_themes(request: ReclusterRequest):
    """
    Regenerate theme labels from stored topic vectors.
    No embedding call is made.
    """
    labels = cluster_items_with_existing_vectors(request.items, threshold=request.threshold)
    return ReclusterResponse(labels=labels, regenerated=len(labels))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
