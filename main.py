#!/usr/bin/env python3
"""
Composition FHIR API Server
Minimal FHIR server exposing read, vread, search, create, update and history
for Composition resources held in an in-memory versioned store.

Not production-ready: nothing is persisted and the store lives only as long
as the process.
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from errors import FHIRServerError, InvalidRequestError
from fhir import (
    FHIRSearchParameters,
    create_fhir_bundle,
    create_history_bundle,
    create_operation_outcome,
    etag_matches,
    generate_etag,
    get_base_url,
    render_bundle_html,
    version_etag,
)
from provider import CompositionResourceProvider

logger = logging.getLogger(__name__)

router = APIRouter()


def get_provider(request: Request) -> CompositionResourceProvider:
    return request.app.state.provider


def resource_response(request: Request, resource: Dict, status_code: int = 200,
                      location: bool = False):
    """Render a single resource with ETag, Last-Modified and conditional read support"""
    last_updated = datetime.fromisoformat(resource["meta"]["lastUpdated"].replace("Z", "+00:00"))
    headers = {
        "ETag": version_etag(resource),
        "Last-Modified": format_datetime(last_updated, usegmt=True)
    }

    if location:
        base_url = get_base_url(request)
        headers["Location"] = (
            f"{base_url}/{resource['resourceType']}/{resource['id']}"
            f"/_history/{resource['meta']['versionId']}"
        )

    if status_code == 200 and request.method == "GET":
        if etag_matches(request.headers.get("If-None-Match"), resource["meta"]["versionId"]):
            return Response(status_code=304, headers=headers)

    return JSONResponse(status_code=status_code, content=resource, headers=headers)


async def read_json_body(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequestError(f"Failed to parse request body as JSON: {e}")


def fhir_search(provider: CompositionResourceProvider, request: Request):
    """
    Execute a search-type interaction.

    No filter criteria are applied; Bundle.total is every stored resource.
    Supports _count, _summary=count and _format=html.
    """
    resource_type = provider.resource_type
    search_params = FHIRSearchParameters(dict(request.query_params))

    resources = provider.search()
    total_matches = len(resources)

    if search_params.summary == "count":
        return {
            "resourceType": "Bundle",
            "type": "searchset",
            "total": total_matches,
            "entry": []
        }

    count = search_params.get_count(default=config.DEFAULT_PAGE_SIZE, max_limit=config.MAX_PAGE_SIZE)
    page_resources = resources if count is None else resources[:count]

    bundle = create_fhir_bundle(
        page_resources,
        resource_type,
        get_base_url(request),
        total_matches,
        str(request.url)
    )

    if search_params.format == "html":
        return PlainTextResponse(content=render_bundle_html(bundle, resource_type), media_type="text/html")

    return bundle


# ============================================================================
# Service endpoints
# ============================================================================

@router.get("/")
async def root(response: Response):
    """Root endpoint - points at the CapabilityStatement"""
    response.headers["Cache-Control"] = "public, max-age=3600"
    return {
        "resourceType": "Bundle",
        "type": "message",
        "entry": [{
            "resource": {
                "resourceType": "MessageHeader",
                "source": {"name": "Composition FHIR API"},
                "meta": {"lastUpdated": datetime.now(timezone.utc).isoformat()}
            }
        }],
        "link": [{"relation": "self", "url": "/metadata"}]
    }


@router.get("/metadata")
async def capability_statement(request: Request, response: Response):
    """FHIR CapabilityStatement"""
    response.headers["Cache-Control"] = "public, max-age=86400"
    provider = get_provider(request)
    return {
        "resourceType": "CapabilityStatement",
        "status": "active",
        "date": datetime.now(timezone.utc).isoformat(),
        "kind": "instance",
        "fhirVersion": "4.0.1",
        "format": ["json"],
        "rest": [{
            "mode": "server",
            "resource": [{
                "type": provider.resource_type,
                "versioning": "versioned",
                "readHistory": True,
                "updateCreate": False,
                "interaction": [
                    {"code": "read"},
                    {"code": "vread"},
                    {"code": "update"},
                    {"code": "create"},
                    {"code": "history-instance"},
                    {"code": "search-type"}
                ],
                "searchParam": [
                    {"name": "_count", "type": "number", "documentation": f"Number of resources to return (max: {config.MAX_PAGE_SIZE})"},
                    {"name": "_format", "type": "token", "documentation": "Specify response format (json, html)"},
                    {"name": "_summary", "type": "token", "documentation": "Return summary (count = return only Bundle.total)"}
                ]
            }]
        }]
    }


# ============================================================================
# Composition endpoints
# ============================================================================

@router.get("/Composition")
async def composition_search(request: Request, response: Response):
    """search-type: latest version of every Composition"""
    bundle = fhir_search(get_provider(request), request)

    if isinstance(bundle, dict):
        etag = generate_etag(bundle)
        if etag_matches(request.headers.get("If-None-Match"), etag):
            return Response(status_code=304, headers={"ETag": f'W/"{etag}"'})
        response.headers["ETag"] = f'W/"{etag}"'

    return bundle


@router.post("/Composition")
async def composition_create(request: Request):
    body = await read_json_body(request)
    resource = get_provider(request).create(body)
    return resource_response(request, resource, status_code=201, location=True)


@router.get("/Composition/{resource_id}")
async def composition_read(resource_id: str, request: Request):
    resource = get_provider(request).read(resource_id)
    return resource_response(request, resource)


@router.put("/Composition/{resource_id}")
async def composition_update(resource_id: str, request: Request):
    body = await read_json_body(request)
    resource = get_provider(request).update(resource_id, body)
    return resource_response(request, resource, location=True)


@router.get("/Composition/{resource_id}/_history")
async def composition_history(resource_id: str, request: Request):
    provider = get_provider(request)
    versions = provider.history(resource_id)
    return create_history_bundle(versions, provider.resource_type, get_base_url(request), str(request.url))


@router.get("/Composition/{resource_id}/_history/{version_id}")
async def composition_vread(resource_id: str, version_id: str, request: Request):
    resource = get_provider(request).read(resource_id, version_id)
    return resource_response(request, resource)


# Anything else is a resource type this server does not serve
@router.api_route("/{resource_type}", methods=["GET", "POST"])
async def unsupported_type(resource_type: str, request: Request):
    # FHIR type names are capitalised; lowercase paths are service endpoints
    if not resource_type[:1].isupper():
        if request.method == "GET":
            raise HTTPException(status_code=404, detail="Not Found")
        raise HTTPException(status_code=405, detail="Method Not Allowed")
    raise HTTPException(status_code=404, detail=f"Resource type {resource_type} not supported")


@router.api_route("/{resource_type}/{resource_id}", methods=["GET", "PUT"])
async def unsupported_type_instance(resource_type: str, resource_id: str):
    raise HTTPException(status_code=404, detail=f"Resource type {resource_type} not supported")


# ============================================================================
# Application
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    if not logging.getLogger().handlers:
        config.setup_logging()

    provider = app.state.provider
    logger.info("Composition FHIR API Starting...")
    logger.info(f"Serving {provider.resource_type} with {len(provider.store)} resource(s) in memory")
    yield
    logger.info("Composition FHIR API Shutting down...")


async def fhir_error_handler(request: Request, exc: FHIRServerError):
    """Convert provider errors to FHIR OperationOutcome"""
    if exc.status_code == 404:
        logger.debug(f"{request.method} {request.url.path}: {exc.diagnostics}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.diagnostics}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_operation_outcome("error", exc.issue_code, exc.diagnostics)
    )


async def fhir_exception_handler(request: Request, exc: StarletteHTTPException):
    """Convert HTTPException to FHIR OperationOutcome"""
    issue_code = "exception"
    if exc.status_code == 404:
        issue_code = "not-found"
    elif exc.status_code == 400:
        issue_code = "invalid"
    elif exc.status_code == 401:
        issue_code = "security"
    elif exc.status_code == 405:
        issue_code = "not-supported"

    return JSONResponse(
        status_code=exc.status_code,
        content=create_operation_outcome("error", issue_code, str(exc.detail))
    )


def create_app(provider: Optional[CompositionResourceProvider] = None) -> FastAPI:
    """Build the FastAPI app around a provider (a freshly seeded one by default)"""
    app = FastAPI(
        title="Composition FHIR API Server",
        description="Minimal FHIR server for Composition resources backed by an in-memory versioned store",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.provider = provider if provider is not None else CompositionResourceProvider()

    # Enable CORS for browser testing
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FHIRServerError, fhir_error_handler)
    app.add_exception_handler(StarletteHTTPException, fhir_exception_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    config.setup_logging()

    print("\n" + "="*60)
    print("Composition FHIR API Server")
    print("="*60)
    print(f"\nAPI will be available at: http://{config.HOST}:{config.PORT}")
    print(f"CapabilityStatement: http://{config.HOST}:{config.PORT}/metadata")
    print(f"Interactive docs: http://{config.HOST}:{config.PORT}/docs")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    uvicorn.run(app, host=config.HOST, port=config.PORT)
