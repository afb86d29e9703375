"""FastAPI server exposing facility recommendations."""

import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from parking.models import FacilityRecommendation
from parking.recommender import ParkingRecommender
from parking.services.cache import AvailabilityCache, FacilityCache
from parking.services.errors import (
    InvalidInputError,
    RequestCancelledError,
    UpstreamServiceError,
)
from parking.services.fetcher import RetryingFetcher
from parking.settings import Settings, global_settings

MAX_BODY_BYTES = 64 * 1024
RECOMMEND_PATH = "/recommendFacility"

HTTP_ERROR_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
}


class CaseInsensitivePathMiddleware:
    """Route any casing of the given paths to their registered spelling."""

    def __init__(self, app, paths: list[str]):
        self.app = app
        self._paths = {path.lower(): path for path in paths}

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            canonical = self._paths.get(scope["path"].lower())
            if canonical is not None and canonical != scope["path"]:
                scope = {**scope, "path": canonical}
        await self.app(scope, receive, send)


class ParkingServer:
    """HTTP server wiring the caches and recommender together."""

    def __init__(
        self,
        recommender: ParkingRecommender,
        facility_cache: FacilityCache,
        availability_cache: AvailabilityCache,
        fetcher: RetryingFetcher | None = None,
    ):
        self.recommender = recommender
        self.facility_cache = facility_cache
        self.availability_cache = availability_cache
        self.fetcher = fetcher
        self.app = FastAPI(title="Stockholm Parking", lifespan=self._lifespan)

        # Register routes
        self.app.get("/healthz")(self.health_check)
        self.app.post(RECOMMEND_PATH, response_model=list[FacilityRecommendation])(
            self.recommend_facility
        )
        self.app.add_middleware(CaseInsensitivePathMiddleware, paths=[RECOMMEND_PATH])

        # Error mapping
        self.app.exception_handler(InvalidInputError)(self._invalid_input)
        self.app.exception_handler(UpstreamServiceError)(self._upstream_unavailable)
        self.app.exception_handler(RequestCancelledError)(self._timed_out)
        self.app.exception_handler(StarletteHTTPException)(self._http_error)
        self.app.exception_handler(Exception)(self._unhandled)

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        logger.info("Parking server starting")
        yield
        await self.availability_cache.close()
        if self.fetcher is not None:
            await self.fetcher.close()
        logger.info("Parking server stopped")

    async def health_check(self):
        """Liveness plus cache statistics."""
        return {
            "status": "ok",
            "caches": {
                "facilities": self.facility_cache.get_stats().to_dict(),
                "availability": self.availability_cache.get_stats().to_dict(),
            },
        }

    async def recommend_facility(self, request: Request):
        """Recommend nearby facilities for the coordinates in the JSON body."""
        chunks: list[bytes] = []
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if received > MAX_BODY_BYTES:
                return JSONResponse({"error": "Payload too large"}, status_code=413)
            chunks.append(chunk)
        body = b"".join(chunks)

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        return await self.recommender.recommend_facility(payload)

    async def _invalid_input(self, request: Request, exc: InvalidInputError):
        return JSONResponse(
            {"error": str(exc), "details": exc.details}, status_code=400
        )

    async def _upstream_unavailable(self, request: Request, exc: UpstreamServiceError):
        logger.bind(service=exc.service, cause=str(exc.cause)).error(
            "Upstream service unavailable"
        )
        return JSONResponse(
            {"error": "Upstream service unavailable", "service": exc.service},
            status_code=503,
        )

    async def _timed_out(self, request: Request, exc: RequestCancelledError):
        logger.bind(reason=exc.reason).error("Request timed out")
        return JSONResponse({"error": "Request timed out"}, status_code=504)

    async def _http_error(self, request: Request, exc: StarletteHTTPException):
        message = HTTP_ERROR_MESSAGES.get(exc.status_code, exc.detail)
        return JSONResponse(
            {"error": message}, status_code=exc.status_code, headers=exc.headers
        )

    async def _unhandled(self, request: Request, exc: Exception):
        logger.bind(error=str(exc)).error("Unhandled server error")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app and its process-wide caches.

    Args:
        settings: Configuration (defaults to the environment)

    Returns:
        FastAPI app
    """
    settings = settings or global_settings
    fetcher = RetryingFetcher(timeout=settings.request_timeout)
    facility_cache = FacilityCache(
        fetcher, settings.facilities_url, ttl=settings.facilities_ttl
    )
    availability_cache = AvailabilityCache(
        fetcher, settings.availability_url, ttl=settings.availability_ttl
    )
    recommender = ParkingRecommender(
        facility_cache,
        availability_cache,
        overall_timeout=settings.overall_timeout,
    )
    server = ParkingServer(recommender, facility_cache, availability_cache, fetcher)
    return server.app
