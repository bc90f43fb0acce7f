# api/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from ingestor.points import PointIngestor
from storage.errors import InputError, StorageError

from .utils.db import make_backend
from .utils.query import format_timestamp, parse_bound

# ----- logging -----
logger = logging.getLogger("uvicorn.error")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))


# ----- Schemas -----
class PointOut(BaseModel):
    timestamp: int
    value: float


class WriteResult(BaseModel):
    ok: bool = True
    namespace: str
    id: str
    value: float
    timestamp: int


class SeriesOut(BaseModel):
    namespace: str
    id: str
    points: List[PointOut]


class ChartInfo(BaseModel):
    id: str
    point_count: int
    last_timestamp: Optional[int] = None
    last_updated: str


class NamespaceOut(BaseModel):
    namespace: str
    charts: List[ChartInfo]
    current_page: int
    total_pages: int
    has_prev: bool
    has_next: bool


def create_app(db_path=None, clock=None, migrations_dir=None) -> FastAPI:
    backend = make_backend(db_path, migrations_dir=migrations_dir)
    ingestor = PointIngestor(backend, clock) if clock else PointIngestor(backend)

    # ----- lifespan (startup/shutdown) -----
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # MigrationError propagates and aborts startup
        backend.connect()
        logger.info("[metrics] Schema up to date (%s)", backend.db_path)
        yield
        backend.close()

    app = FastAPI(title="Metrics Ingest API", version="0.1.0", lifespan=lifespan)
    app.state.backend = backend

    # ----- Routes -----
    # registered before GET /{namespace}: "health" is reserved as a listing name
    @app.get("/health")
    def health():
        try:
            backend.ping()
            return {"status": "ok"}
        except StorageError as e:
            return {"status": "degraded", "error": str(e)}

    @app.post("/{namespace}/{metric_id}", response_model=WriteResult)
    def post_metric(namespace: str, metric_id: str, value: Optional[str] = None):
        try:
            point = ingestor.ingest(namespace, metric_id, value)
        except InputError as e:
            logger.debug("[metrics] Rejected %s/%s: %s", namespace, metric_id, e)
            raise HTTPException(status_code=400, detail=str(e))
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return WriteResult(
            namespace=point.namespace,
            id=point.id,
            value=point.value,
            timestamp=point.timestamp,
        )

    @app.get("/{namespace}/{metric_id}", response_model=SeriesOut)
    def get_series(
        namespace: str,
        metric_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = Query(None, ge=1),
    ):
        try:
            points = backend.range_query(
                namespace, metric_id, parse_bound(start), parse_bound(end), limit
            )
        except InputError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return SeriesOut(
            namespace=namespace,
            id=metric_id,
            points=[PointOut(timestamp=p.timestamp, value=p.value) for p in points],
        )

    @app.get("/{namespace}", response_model=NamespaceOut)
    def get_namespace(namespace: str, page: int = 1):
        try:
            result = backend.list_series(namespace, page)
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return NamespaceOut(
            namespace=namespace,
            charts=[
                ChartInfo(
                    id=s.id,
                    point_count=s.point_count,
                    last_timestamp=s.last_timestamp,
                    last_updated=format_timestamp(s.last_timestamp),
                )
                for s in result.series
            ],
            current_page=result.page,
            total_pages=result.total_pages,
            has_prev=result.has_prev,
            has_next=result.has_next,
        )

    return app


app = create_app()


def main() -> None:
    uvicorn.run("api.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
