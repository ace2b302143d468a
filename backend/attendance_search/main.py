from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .commands import Command
from .config import load_settings
from .engine import AdvancedSearchEngine
from .schemas import (
    CommandInfo,
    QueryMeta,
    QueryRequest,
    QueryResponse,
    SearchHit,
    SearchResponse,
)
from .search_context import SearchContext

settings = load_settings()

app = FastAPI(title="Attendance Search API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _command_info(command: Command) -> CommandInfo:
    # Actions stay server-side; the client gets the descriptor only
    return CommandInfo(
        id=command.id,
        label=command.label,
        description=command.description,
        category=command.category,
        keywords=command.keywords,
    )


def _engine_for(req: QueryRequest) -> AdvancedSearchEngine:
    engine = AdvancedSearchEngine(settings=settings)
    engine.set_search_context(
        SearchContext(
            students=req.students,
            sessions=req.sessions,
            attendance_data=req.attendance_data,
            selected_date=req.selected_date,
            current_mode=req.current_mode,
        )
    )
    return engine


@app.get("/healthz")
@app.get("/api/healthz")
def health():
    return {"status": "ok"}


@app.post("/query", response_model=QueryResponse)
@app.post("/api/query", response_model=QueryResponse)
def query_endpoint(req: QueryRequest):
    """
    Evaluate a search-box query against the snapshot sent with the request.

    Malformed queries are not errors: they come back with ok=True,
    meta.fallback_used=True and the parse errors that caused the fallback.
    ok=False is reserved for unexpected failures.
    """
    engine = _engine_for(req)

    try:
        outcome = engine.run_query(req.query)
        result = outcome.result
        metadata = result.metadata

        students = result.students
        sessions = result.sessions
        commands: List[Command] = result.commands
        if req.limit is not None:
            students = students[: req.limit]
            sessions = sessions[: req.limit]
            commands = commands[: req.limit]

        meta = QueryMeta(
            query=req.query,
            has_advanced_syntax=bool(outcome.ast and outcome.ast.has_advanced_syntax),
            fallback_used=outcome.fallback_used,
            parse_errors=outcome.parse_errors,
            match_count=metadata.match_count if metadata else 0,
            execution_time_ms=metadata.execution_time_ms if metadata else 0.0,
            applied_filters=metadata.applied_filters if metadata else [],
            debug={"suggestions": outcome.suggestions} if outcome.suggestions else {},
        )
        return QueryResponse(
            ok=True,
            meta=meta,
            students=students,
            sessions=sessions,
            commands=[_command_info(c) for c in commands],
        )
    except Exception as exc:
        meta = QueryMeta(query=req.query, has_advanced_syntax=False, fallback_used=False)
        return QueryResponse(ok=False, meta=meta, error=str(exc))


@app.post("/search", response_model=SearchResponse)
@app.post("/api/search", response_model=SearchResponse)
def search_endpoint(req: QueryRequest):
    """Ranked command-palette results for the query."""
    engine = _engine_for(req)

    try:
        hits = engine.search(req.query, req.limit)
        return SearchResponse(
            ok=True,
            query=req.query,
            results=[
                SearchHit(
                    command=_command_info(hit.command),
                    score=hit.score,
                    matched_text=hit.matched_text,
                    highlights=hit.highlights,
                )
                for hit in hits
            ],
        )
    except Exception as exc:
        return SearchResponse(ok=False, query=req.query, error=str(exc))
