"""
DF Bus GPS Proxy (FastAPI)

Purpose
=======
Proxy the DFTrans real-time GPS feed for Distrito Federal buses, flatten the
per-operator payload into one list of vehicle records, and serve it to the
browser map through a short-lived shared cache.

Routes
------
- ``GET /``        landing map (``public/index.html``)
- ``GET /static``  assets under ``public/``
- ``GET /data``    JSON array of vehicle records
- ``GET /teste``   liveness check

Run
---
$ uvicorn app:app --port 5000
$ python app.py            # honours $PORT

Environment
-----------
- PYTHON >= 3.10
- pip install -e .
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from bus_data import BusDataService, records_to_json
from data_cache import build_cache_store
from dftrans_client import DFTransClient
from errors import UpstreamUnavailable
from settings import Settings
from vehicle_records import LineFilter

# ---------------------------
# Config
# ---------------------------
SETTINGS = Settings.from_env()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
DATA_ERROR_BODY = {"error": "Failed to fetch bus data"}


def build_bus_data_service(settings: Settings) -> BusDataService:
    return BusDataService(
        fetcher=DFTransClient.from_env(settings),
        cache=build_cache_store(settings),
        line_filter=LineFilter(settings.line_filter_enabled, settings.allowed_lines),
        single_flight=settings.cache_single_flight,
    )


# ---------------------------
# App & state
# ---------------------------
app = FastAPI(title="DF Bus GPS Proxy")
app.mount(
    "/static",
    StaticFiles(directory=str(SETTINGS.public_dir), check_dir=False),
    name="static",
)


@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.on_event("startup")
async def init_bus_data() -> None:
    if getattr(app.state, "bus_data", None) is None:
        app.state.bus_data = build_bus_data_service(SETTINGS)
    print(
        f"[server] cache={app.state.bus_data.cache.describe()} "
        f"freshness={SETTINGS.cache_duration_s}s line_filter={SETTINGS.line_filter_enabled}"
    )


@app.on_event("shutdown")
async def shutdown_bus_data() -> None:
    service: Optional[BusDataService] = getattr(app.state, "bus_data", None)
    if service is None:
        return
    close = getattr(service.fetcher, "aclose", None)
    if close is not None:
        await close()
    await service.cache.aclose()


def _get_bus_data() -> BusDataService:
    service = getattr(app.state, "bus_data", None)
    if service is None:
        service = build_bus_data_service(SETTINGS)
        app.state.bus_data = service
    return service


# ---------------------------
# Routes
# ---------------------------
@app.get("/")
async def index():
    return FileResponse(SETTINGS.public_dir / "index.html")


@app.get("/data")
async def bus_data():
    try:
        records = await _get_bus_data().get_data()
    except UpstreamUnavailable as exc:
        print(f"[route] Error in /data: {exc}")
        return JSONResponse(DATA_ERROR_BODY, status_code=502)
    return JSONResponse(records_to_json(records))


@app.get("/teste")
async def teste():
    return {"success": True}


if __name__ == "__main__":
    import uvicorn

    print(f"[server] Running on http://0.0.0.0:{SETTINGS.port}")
    uvicorn.run(app, host="0.0.0.0", port=SETTINGS.port)
