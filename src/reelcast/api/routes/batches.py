"""Batch fan-out endpoints."""

from fastapi import APIRouter, Body, Depends
from pydantic import TypeAdapter

from reelcast.api.dependencies import get_services, get_user_id, parse_body, resolve_user_id
from reelcast.models.batch import BatchRequest
from reelcast.services import Services

router = APIRouter(prefix="/api/v1/batches", tags=["batches"])

_batch_request_adapter: TypeAdapter[BatchRequest] = TypeAdapter(BatchRequest)


@router.post("", status_code=202)
def create_batch(
    body: dict = Body(...),
    header_user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """Validate and persist a batch, then hand it to the expansion queue."""
    user_id = resolve_user_id(body, header_user_id)
    request = parse_body(_batch_request_adapter, {**body, "user_id": user_id}, "batch request")
    result = services.fanout.create_batch(request)
    return result.model_dump()


@router.get("/{batch_id}")
def get_batch(batch_id: str, services: Services = Depends(get_services)):
    """Aggregate counters plus per-item status."""
    batch = services.batches.get(batch_id)
    items = services.batches.list_items(batch_id)
    return {
        "batch": batch.model_dump(mode="json"),
        "items": [item.model_dump(mode="json", exclude={"config"}) for item in items],
    }
