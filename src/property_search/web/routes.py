"""JSON routes over the stored datasets."""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter

from property_search.db import PropertySearchStorage
from property_search.models import LastUpdated, PropertySummary, School, TubeStation

router = APIRouter()

_PropertySummaries = TypeAdapter(list[PropertySummary])
_TubeStations = TypeAdapter(list[TubeStation])
_Schools = TypeAdapter(list[School])


def _get_storage(request: Request) -> PropertySearchStorage:
    return request.app.state.storage  # type: ignore[no-any-return]


def _json(content: bytes) -> Response:
    return Response(content=content, media_type="application/json")


@router.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "ok"})


@router.get("/api/property")
async def list_property_summaries(request: Request) -> Response:
    """Every property summary; empty statistics are emitted as null."""
    summaries = await _get_storage(request).get_property_summaries()
    return _json(_PropertySummaries.dump_json(summaries, by_alias=True))


@router.get("/api/tube-stations")
async def list_tube_stations(request: Request) -> Response:
    stations = await _get_storage(request).get_tube_stations()
    return _json(_TubeStations.dump_json(stations, by_alias=True))


@router.get("/api/schools")
async def list_schools(request: Request) -> Response:
    schools = await _get_storage(request).get_schools()
    return _json(_Schools.dump_json(schools, by_alias=True))


@router.get("/api/last-updated")
async def last_updated(request: Request) -> Response:
    value: LastUpdated = await _get_storage(request).get_last_updated()
    return _json(value.model_dump_json(by_alias=True).encode())
