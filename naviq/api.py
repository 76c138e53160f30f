"""FastAPI routes for venue graph loading, query resolution and routing.

Flow:
- `PUT /graphs/{graph_id}` registers a persisted venue graph document.
- `POST /graphs/{graph_id}/query` runs the full natural-language pipeline.
- `POST /graphs/{graph_id}/route` routes between two known node ids.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from naviq.ai import (
    GeminiClient,
    GeminiDisambiguator,
    GeminiInstructionComposer,
    GeminiIntentClassifier,
    GeminiNavigationGate,
)
from naviq.classifier import QueryClassifier
from naviq.conversation import ConversationStore
from naviq.graph_store import FlatGraph, GraphDataError, MapGraph, flatten, parse_map_graph
from naviq.graph_validation import validate_map_graph
from naviq.matching import EntityMatcher
from naviq.resolver import QueryResolver
from naviq.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class LoadedGraph:
    """Parsed venue graph kept alongside its raw document."""

    document: dict[str, Any]
    graph: MapGraph
    flat: FlatGraph
    report: dict[str, Any]


@dataclass
class ServiceState:
    """In-memory registry of loaded graphs and the shared pipeline."""

    graphs: dict[str, LoadedGraph] = field(default_factory=dict)
    resolver: QueryResolver | None = None


STATE = ServiceState()


class QueryRequest(BaseModel):
    """Natural-language navigation query from one user."""

    user_id: str = Field(default="anonymous", min_length=1)
    query: str = Field(..., min_length=1)

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be blank")
        return value


class RouteRequest(BaseModel):
    """Route between two node ids that are already known."""

    source_id: str = Field(..., min_length=1)
    destination_id: str = Field(..., min_length=1)


class GraphLoadResponse(BaseModel):
    graph_id: str
    node_count: int
    scope_count: int
    validation_report: dict[str, Any]


def build_resolver(settings: Settings) -> QueryResolver:
    """Wire collaborators; Gemini is used only when an API key is configured."""
    conversations = ConversationStore(ttl_s=settings.history_ttl_s)

    if not settings.ai_enabled:
        logger.info("GEMINI_API_KEY not set, running with lexical classification and fuzzy matching only")
        return QueryResolver(
            classifier=QueryClassifier(conversations=conversations),
            matcher=EntityMatcher(ai_timeout_s=settings.ai_timeout_s, max_candidates=settings.max_candidates),
        )

    client = GeminiClient(api_key=settings.gemini_api_key, model=settings.gemini_model)
    return QueryResolver(
        classifier=QueryClassifier(
            classifier=GeminiIntentClassifier(client),
            gate=GeminiNavigationGate(client),
            conversations=conversations,
        ),
        matcher=EntityMatcher(
            disambiguator=GeminiDisambiguator(client),
            ai_timeout_s=settings.ai_timeout_s,
            max_candidates=settings.max_candidates,
        ),
        composer=GeminiInstructionComposer(client),
    )


def _graph_or_404(graph_id: str) -> LoadedGraph:
    loaded = STATE.graphs.get(graph_id)
    if loaded is None:
        raise HTTPException(status_code=404, detail=f"Graph '{graph_id}' is not loaded")
    return loaded


def _graph_data_error(graph_id: str, exc: GraphDataError) -> HTTPException:
    logger.warning("Graph %s cannot be routed: %s", graph_id, exc)
    return HTTPException(status_code=409, detail=f"Graph '{graph_id}' has invalid data: {exc}")


def _resolver() -> QueryResolver:
    if STATE.resolver is None:
        raise HTTPException(status_code=503, detail="Query resolver is not initialized")
    return STATE.resolver


def _conversations() -> ConversationStore:
    store = _resolver().classifier.conversations
    if store is None:
        raise HTTPException(status_code=503, detail="Conversation store is not configured")
    return store


def create_app(settings: Settings | None = None, resolver: QueryResolver | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()
    if resolver is not None:
        STATE.resolver = resolver
    elif STATE.resolver is None:
        STATE.resolver = build_resolver(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if STATE.resolver is not None:
            logger.info("Shutting down query resolver")
            STATE.resolver.close()

    app = FastAPI(title="naviq API", version="0.3.0", lifespan=lifespan)

    raw_origins = settings.cors_origins
    if raw_origins == "*":
        cors_origins = ["*"]
        allow_credentials = False
    else:
        cors_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Health endpoint with runtime capability metadata."""
        return {
            "status": "ok",
            "version": app.version,
            "ai_enabled": settings.ai_enabled,
            "graphs": len(STATE.graphs),
        }

    @app.put("/graphs/{graph_id}", response_model=GraphLoadResponse)
    def load_graph(graph_id: str, document: dict[str, Any] = Body(...)) -> GraphLoadResponse:
        """Register or replace a venue graph document."""
        try:
            graph = parse_map_graph(document)
            flat = flatten(graph)
            report = validate_map_graph(graph, flat)
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid graph document: {exc}") from exc

        STATE.graphs[graph_id] = LoadedGraph(document=document, graph=graph, flat=flat, report=report)
        logger.info(
            "Loaded graph %s: %d nodes, %d scopes, %d errors",
            graph_id,
            len(flat.nodes),
            len(flat.scoped_edges),
            report["summary"]["errors"],
        )
        return GraphLoadResponse(
            graph_id=graph_id,
            node_count=len(flat.nodes),
            scope_count=len(flat.scoped_edges),
            validation_report=report,
        )

    @app.get("/graphs/{graph_id}/nodes")
    def list_nodes(graph_id: str) -> dict[str, Any]:
        """Return the flattened node universe with location tags."""
        loaded = _graph_or_404(graph_id)
        return {"graph_id": graph_id, "nodes": [n.to_dict() for n in loaded.flat.nodes]}

    @app.post("/graphs/{graph_id}/resolve")
    def resolve_query(graph_id: str, payload: QueryRequest) -> dict[str, Any]:
        """Classify a query and match its fragments without routing."""
        loaded = _graph_or_404(graph_id)
        try:
            resolution = _resolver().resolve(loaded.flat, payload.query)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid query: {exc}") from exc
        return resolution.to_dict()

    @app.post("/graphs/{graph_id}/query")
    def navigate(graph_id: str, payload: QueryRequest) -> dict[str, Any]:
        """Run the full navigation pipeline for one user query."""
        loaded = _graph_or_404(graph_id)
        try:
            answer = _resolver().answer(loaded.document, loaded.flat, payload.user_id, payload.query)
        except HTTPException:
            raise
        except GraphDataError as exc:
            raise _graph_data_error(graph_id, exc) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid query: {exc}") from exc
        except Exception as exc:  # pragma: no cover - safety net
            logger.exception("Query pipeline failed for graph %s", graph_id)
            raise HTTPException(status_code=500, detail=f"Unexpected query error: {exc}") from exc
        return answer.to_dict()

    @app.post("/graphs/{graph_id}/route")
    def route(graph_id: str, payload: RouteRequest) -> dict[str, Any]:
        """Shortest route between two node ids plus the reduced graph."""
        loaded = _graph_or_404(graph_id)
        try:
            answer = _resolver().route(loaded.document, loaded.flat, payload.source_id, payload.destination_id)
        except GraphDataError as exc:
            raise _graph_data_error(graph_id, exc) from exc
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return answer.to_dict()

    @app.get("/conversations/{user_id}")
    def get_conversation(user_id: str) -> dict[str, Any]:
        history = _conversations().get_history(user_id)
        return {"user_id": user_id, "turns": [{"role": role, "text": text} for role, text in history]}

    @app.delete("/conversations/{user_id}")
    def delete_conversation(user_id: str) -> dict[str, Any]:
        return {"user_id": user_id, "evicted": _conversations().evict(user_id)}

    return app
