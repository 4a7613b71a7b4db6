from fastapi import APIRouter, HTTPException, status

from app.schemas.runs import RunStart, RunStatus, RunTrace
from app.services import runs as run_service
from app.services.errors import ServiceError

runs_router = APIRouter(prefix="/runs", tags=["runs"])


@runs_router.post("", status_code=status.HTTP_201_CREATED, response_model=RunStatus)
async def create_run(payload: RunStart):
    try:
        return await run_service.start_run(payload)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@runs_router.get("/{run_id}", response_model=RunStatus)
def get_run(run_id: str):
    try:
        return run_service.fetch_status(run_id)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@runs_router.get("/{run_id}/trace", response_model=RunTrace)
def get_run_trace(run_id: str):
    try:
        return run_service.fetch_trace(run_id)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
