"""Section pulse API routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from section_pulse.exceptions import PulseStoreError, TenantNotFoundError
from section_pulse.runtime import PulseRuntime
from section_pulse.schemas import CollectionEvent, PulseView, SchemaRef

router = APIRouter(prefix="/api/tenants/{schema_key}", tags=["Pulse"])


def get_runtime(request: Request) -> PulseRuntime:
    return request.app.state.runtime


def get_tenant(schema_key: str, runtime: PulseRuntime = Depends(get_runtime)) -> SchemaRef:
    """Resolve the path tenant through the directory, never by name construction."""
    try:
        tenant = runtime.directory.resolve(schema_key)
    except TenantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not runtime.store.has_table(tenant):
        raise HTTPException(status_code=404, detail=f"Tenant {schema_key} has no section pulse data")
    return tenant


@router.get("/societies/{society_id}/pulse", response_model=list[PulseView])
def society_pulse_history(
    society_id: int,
    limit: Optional[int] = Query(None, ge=1, le=366),
    tenant: SchemaRef = Depends(get_tenant),
    runtime: PulseRuntime = Depends(get_runtime),
):
    """Newest-first section history for one society (pulse.recent_days_limit by default)."""
    limit = limit or runtime.settings.pulse.recent_days_limit
    try:
        return runtime.store.recent_for_society(tenant, society_id, limit=limit)
    except PulseStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/societies/{society_id}/pulse/{day}", response_model=PulseView)
def society_pulse_for_day(
    society_id: int,
    day: date,
    tenant: SchemaRef = Depends(get_tenant),
    runtime: PulseRuntime = Depends(get_runtime),
):
    """One society's section on one day."""
    try:
        pulse = runtime.store.get_pulse(tenant, society_id, day)
    except PulseStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if pulse is None:
        raise HTTPException(status_code=404, detail=f"No section for society {society_id} on {day}")
    return pulse


@router.get("/pulse/{day}", response_model=list[PulseView])
def pulses_for_day(
    day: date,
    tenant: SchemaRef = Depends(get_tenant),
    runtime: PulseRuntime = Depends(get_runtime),
):
    """All society sections of a tenant on one day."""
    try:
        return runtime.store.list_for_day(tenant, day)
    except PulseStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/collections", response_model=PulseView)
def record_collection(
    event: CollectionEvent,
    tenant: SchemaRef = Depends(get_tenant),
    runtime: PulseRuntime = Depends(get_runtime),
):
    """Ingestion hook: apply a freshly inserted collection to its section."""
    try:
        return runtime.writer.record_collection(tenant, event.society_id, event.collection_time)
    except PulseStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
