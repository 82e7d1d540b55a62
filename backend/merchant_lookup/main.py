from contextlib import asynccontextmanager
import asyncio
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from merchant_lookup.cache import normalize_key
from merchant_lookup.config import get_settings
from merchant_lookup.errors import InvalidImageURL, UpstreamHTTPError
from merchant_lookup.image_proxy import proxy_image
from merchant_lookup.logging_setup import configure_logging
from merchant_lookup.models import BatchLookupItem, BatchLookupResponse, ClearCacheResponse, HealthResponse
from merchant_lookup.services import build_services

logger = logging.getLogger(__name__)

LOOKUP_USAGE = "/lookup?name=MerchantName"
BATCH_USAGE = 'POST /lookup {"queries": ["Nike", "Samsung"]}'


def create_app(settings=None, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.debug)
        services = build_services(settings, transport=transport)
        app.state.services = services
        logger.info("Merchant lookup server running on http://%s:%s", settings.host, settings.port)
        if settings.use_mock:
            logger.warning("MOCK MODE ENABLED - returning placeholder data")
        if settings.debug:
            logger.info("DEBUG MODE ENABLED - verbose logging active")
        try:
            yield
        finally:
            await services.aclose()

    app = FastAPI(title="Merchant Lookup API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def cached_lookup(services, name: str):
        return await services.cache.get_or_compute(
            normalize_key(name),
            lambda: services.resolver.lookup_merchant(name),
        )

    def proxied(request: Request, url: str | None) -> str | None:
        if not url:
            return None
        return str(request.url_for("proxy_image").include_query_params(url=url))

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/")
    def root():
        return {
            "message": "Merchant lookup server is running",
            "endpoints": ["GET /lookup", "POST /lookup", "GET /image", "GET /health", "POST /clear-cache"],
        }

    @app.get("/lookup")
    async def lookup(request: Request, name: str = ""):
        name = name.strip()
        if not name:
            return JSONResponse(
                status_code=400,
                content={"error": "Missing name query param", "usage": LOOKUP_USAGE},
            )

        services = request.app.state.services
        try:
            record = await cached_lookup(services, name)
        except Exception as e:
            logger.error("Lookup failed for %r: %s", name, e)
            return JSONResponse(
                status_code=500,
                content={"error": "lookup_failed", "message": str(e) or repr(e), "merchantName": name},
            )
        return record.to_response()

    @app.post("/lookup", response_model=BatchLookupResponse)
    async def lookup_batch(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        queries = body.get("queries") if isinstance(body, dict) else None
        if not isinstance(queries, list) or not all(isinstance(q, str) for q in queries):
            return JSONResponse(
                status_code=400,
                content={"error": "queries must be an array of strings", "usage": BATCH_USAGE},
            )

        services = request.app.state.services
        names = [q.strip() for q in queries if q.strip()]
        if len(names) > services.settings.max_batch_size:
            return JSONResponse(
                status_code=400,
                content={
                    "error": f"At most {services.settings.max_batch_size} queries per request",
                    "usage": BATCH_USAGE,
                },
            )

        outcomes = await asyncio.gather(
            *(cached_lookup(services, name) for name in names),
            return_exceptions=True,
        )

        results = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Batch lookup failed for %r: %s", name, outcome)
                results.append(BatchLookupItem(query=name, error="lookup_failed", message=str(outcome)))
                continue
            results.append(BatchLookupItem(
                query=name,
                logoProxyUrl=proxied(request, outcome.logo_url),
                heroProxyUrl=proxied(request, outcome.hero_url),
                **outcome.to_response(),
            ))
        return BatchLookupResponse(results=results)

    @app.get("/image", name="proxy_image")
    async def image(request: Request, url: str = ""):
        services = request.app.state.services
        try:
            return await proxy_image(services.fetcher, url)
        except InvalidImageURL as e:
            return JSONResponse(status_code=400, content={"error": str(e), "usage": "/image?url=https://..."})
        except UpstreamHTTPError as e:
            logger.info("[proxy] upstream %s for %s", e.status_code, e.url)
            return JSONResponse(status_code=e.status_code, content={"error": "upstream_error", "status": e.status_code})
        except httpx.HTTPError as e:
            logger.warning("[proxy] fetch failed for %s: %s", url, e)
            return JSONResponse(status_code=502, content={"error": "upstream_unreachable", "message": str(e)})

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        services = request.app.state.services
        return HealthResponse(
            ok=True,
            cacheSize=services.cache.size,
            inFlight=services.cache.in_flight,
            uptime=services.uptime,
        )

    @app.post("/clear-cache", response_model=ClearCacheResponse)
    async def clear_cache(request: Request):
        cleared = request.app.state.services.cache.clear()
        return ClearCacheResponse(ok=True, cleared=cleared)

    return app


app = create_app()
