from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from errors import NotFoundError
from logging_config import configure_logging, get_logger
from models import CountryRecord
from reconcile import Reconciler, build_reconciler
from scheduler import PollingScheduler
from settings import Settings
from storage import HistoryStore

log = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    store: HistoryStore | None = None,
    reconciler: Reconciler | None = None,
) -> FastAPI:
    """Build the read API.

    A ``store`` passed in is owned by the caller and is neither opened nor
    closed here. Otherwise the lifespan opens one at ``settings.db_path``.
    """
    settings = settings or Settings.from_env()
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        active_store = app.state.store
        if owns_store:
            active_store.open()
        scheduler = None
        if settings.polling_enabled:
            scheduler = PollingScheduler(
                reconciler or build_reconciler(settings, active_store),
                interval_seconds=settings.poll_interval_seconds,
            )
            scheduler.start()
        app.state.scheduler = scheduler
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            if owns_store:
                active_store.close()

    app = FastAPI(title="Pandemic History API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store or HistoryStore(settings.db_path)
    app.state.scheduler = None

    @app.exception_handler(HTTPException)
    async def _error_payload(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _validation_payload(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for error in exc.errors():
            field = error["loc"][-1] if error.get("loc") else "request"
            problems.append(f"{field}: {error['msg']}")
        return JSONResponse(status_code=400, content={"error": "; ".join(problems)})

    @app.get("/api/countries")
    def countries(store: HistoryStore = Depends(get_store)) -> list[str]:
        return store.list_country_names()

    @app.get("/api/history/all")
    def history_all(
        last_days: int | None = Query(default=None, alias="lastDays"),
        store: HistoryStore = Depends(get_store),
    ) -> list[dict]:
        window = _check_last_days(last_days, settings.max_last_days)
        return [
            {"country": record.name, "history": [day.to_wire() for day in record.history]}
            for record in store.get_all_histories(window or settings.max_last_days)
        ]

    @app.get("/api/history/{country}")
    def history_country(
        country: str,
        last_days: int | None = Query(default=None, alias="lastDays"),
        store: HistoryStore = Depends(get_store),
    ) -> list[dict]:
        window = _check_last_days(last_days, settings.max_last_days)
        record = _resolve(store, country)
        return [day.to_wire() for day in store.get_history(record.name, window)]

    @app.get("/api/history/{country}/{key}")
    def history_key(
        country: str,
        key: str,
        last_days: int | None = Query(default=None, alias="lastDays"),
        store: HistoryStore = Depends(get_store),
    ) -> list[dict]:
        window = _check_last_days(last_days, settings.max_last_days)
        record = _resolve(store, country)
        items = []
        for day in store.get_history(record.name, window):
            wire = day.to_wire()
            items.append({"date": day.date, key: wire.get(key)})
        return items

    @app.get("/api/countries/{country}/info")
    def country_info(country: str, store: HistoryStore = Depends(get_store)) -> dict:
        record = _resolve(store, country)
        return {**record.info.model_dump(by_alias=True), "country": record.name}

    @app.get("/api/status")
    def status(request: Request) -> dict:
        scheduler: PollingScheduler | None = request.app.state.scheduler
        if scheduler is None:
            return {"state": "disabled", "polling": False, "last_cycle": None}
        return scheduler.status()

    return app


def get_store(request: Request) -> HistoryStore:
    return request.app.state.store


def _check_last_days(last_days: int | None, cap: int) -> int | None:
    if last_days is None:
        return None
    if last_days > cap:
        raise HTTPException(status_code=400, detail=f"lastDays must be less than {cap + 1}")
    if last_days < 1:
        raise HTTPException(status_code=400, detail="lastDays must be a positive integer")
    return last_days


def _resolve(store: HistoryStore, country: str) -> CountryRecord:
    try:
        return store.find_country(country)
    except NotFoundError as err:
        raise HTTPException(status_code=404, detail=str(err)) from err


app = create_app()
