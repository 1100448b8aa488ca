"""Debug and control HTTP API for development servers."""

from typing import Any

import structlog
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.build.models import BuildOptions
from src.build.orchestrator import BuildOrchestrator
from src.build.watch import WatchService
from src.core.errors import ConfigurationError, HssError
from src.observability.metrics import BuildMetrics


logger = structlog.get_logger()


def _error(message: str, status_code: int = 200, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"ok": False, "error": message, **extra}
    )


async def hss_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report recoverable engine errors as ``{ok: false}`` without a 5xx."""
    extra: dict[str, Any] = {}
    if isinstance(exc, ConfigurationError):
        extra["errors"] = exc.errors
    return _error(str(exc), **extra)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected faults, returned as a JSON 500."""
    logger.error(
        "api_unhandled_exception",
        path=request.url.path,
        error=f"{type(exc).__name__}: {exc}",
    )
    return _error("Internal error", status_code=500)


def _parse_exact(exact: str | None) -> frozenset[str]:
    if not exact:
        return frozenset()
    return frozenset(slug.strip() for slug in exact.split(",") if slug.strip())


def create_router(
    orchestrator: BuildOrchestrator,
    watch: WatchService | None = None,
    dev: bool = True,
) -> APIRouter:
    """Build the API routes bound to one orchestrator.

    Args:
        orchestrator: Orchestrator serving the site.
        watch: Watch service; watch routes report an error without one.
        dev: Default ``dev`` flag for ``POST /build``.

    Returns:
        APIRouter with every debug and control route.
    """
    router = APIRouter()

    def is_watching() -> bool:
        return watch is not None and watch.is_watching

    @router.get("/config")
    def get_config() -> dict[str, Any]:
        config = orchestrator.config
        return {
            "config": config.summary(),
            "buildStatus": orchestrator.status.snapshot(),
            "isWatching": is_watching(),
            "pendingFiles": watch.pending_files if watch is not None else [],
            "pendingSaves": [
                {"slug": p.slug, "storeId": p.store_id, "path": p.path}
                for p in orchestrator.pending_saves
            ],
            "run": list(config.run),
            "stores": list(config.stores),
        }

    @router.get("/trace.json")
    def get_trace() -> dict[str, Any]:
        tracer = orchestrator.trace
        return tracer.snapshot() if tracer is not None else {}

    @router.get("/_debug/api/site")
    def get_site() -> dict[str, Any]:
        resources = orchestrator.resources
        last = orchestrator.last_result
        entries: list[dict[str, Any]] = []
        if resources is not None:
            for resource in resources:
                label = resource.extracted.get("extract-label-string") or {}
                entries.append(
                    {
                        "slug": resource.slug,
                        "type": resource.type.value,
                        "label": label.get("label"),
                        "failed": resource.failed,
                        "storeId": resource.source.store_id,
                        "diagnostics": len(resource.diagnostics),
                    }
                )
        return {
            "buildStatus": orchestrator.status.snapshot(),
            "lastBuild": last.model_dump(mode="json") if last else None,
            "metrics": BuildMetrics.get_instance().get_summary(),
            "resources": entries,
            "filesToWatch": resources.files_to_watch if resources else [],
            "isWatching": is_watching(),
        }

    @router.get("/_debug/api/resource/{slug:path}", response_model=None)
    def get_resource(slug: str) -> dict[str, Any] | JSONResponse:
        resources = orchestrator.resources
        resource = resources.get(slug) if resources is not None else None
        if resource is None:
            return _error(f"Unknown resource: {slug}", status_code=404)
        tracer = orchestrator.trace
        trace = tracer.snapshot()["resources"].get(slug) if tracer else None
        return {
            **resource.summary(),
            "extracted": resource.extracted,
            "enriched": resource.enriched,
            "trace": trace,
        }

    @router.get("/_debug/api/health")
    def get_health() -> dict[str, Any]:
        paths = orchestrator.paths(dev)
        stored_hash = orchestrator.cache_marker(dev)
        current_hash = orchestrator.config.configuration_hash()
        status = orchestrator.status.snapshot()
        checks = {
            "config": {"ok": True, "source": orchestrator.config.source_path},
            "buildDir": {
                "ok": paths.build_dir.is_dir(),
                "path": str(paths.build_dir),
            },
            "cacheMarker": {
                "ok": stored_hash == current_hash,
                "stored": stored_hash,
                "current": current_hash,
            },
            "lastBuild": {
                "ok": status["status"] != "error",
                "status": status["status"],
                "buildCount": status["buildCount"],
            },
        }
        return {"ok": all(c["ok"] for c in checks.values()), "checks": checks}

    @router.post("/watch", response_model=None)
    def post_watch() -> dict[str, Any] | JSONResponse:
        if watch is None:
            return _error("Watch mode is not available")
        changed = watch.watch()
        return {"ok": True, "watching": True, "changed": changed}

    @router.post("/unwatch", response_model=None)
    def post_unwatch() -> dict[str, Any] | JSONResponse:
        if watch is None:
            return _error("Watch mode is not available")
        changed = watch.unwatch()
        return {"ok": True, "watching": False, "changed": changed}

    @router.post("/toggle-watch", response_model=None)
    def post_toggle_watch() -> dict[str, Any] | JSONResponse:
        if watch is None:
            return _error("Watch mode is not available")
        return {"ok": True, "watching": watch.toggle()}

    @router.post("/build")
    def post_build(
        cache: bool = Query(default=True),
        emit: bool = Query(default=True),
        dev_build: bool | None = Query(default=None, alias="dev"),
        watch_after: bool | None = Query(default=None, alias="watch"),
        exact: str | None = Query(default=None),
    ) -> dict[str, Any]:
        options = BuildOptions(
            cache=cache,
            emit=emit,
            dev=dev if dev_build is None else dev_build,
            watch=watch_after,
            exact=_parse_exact(exact),
        )
        result = orchestrator.cached_build(options)
        return {
            "ok": True,
            "buildId": result.build_id,
            "buildConfig": result.build_config,
            "stats": result.stats.model_dump(mode="json"),
            "buildStatus": orchestrator.status.snapshot(),
            "isWatching": is_watching(),
        }

    @router.post("/build/save")
    def post_build_save() -> dict[str, Any]:
        saved = orchestrator.save_pending()
        return {"ok": True, "saved": saved}

    return router


def create_app(
    orchestrator: BuildOrchestrator,
    watch: WatchService | None = None,
    dev: bool = True,
) -> FastAPI:
    """Build the debug/control FastAPI application.

    Args:
        orchestrator: Orchestrator serving the site.
        watch: Optional watch service.
        dev: Default ``dev`` flag for ``POST /build``.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(title="iiif-headless-site debug API")
    app.state.orchestrator = orchestrator
    app.state.watch = watch
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HssError, hss_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(create_router(orchestrator, watch, dev))
    return app
