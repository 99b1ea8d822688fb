"""
healthsync/api/flow.py

Purpose: Access flow endpoints for the UI shell

- GET returns the client's current step (restoring a persisted session)
- POST events drives the state machine
- DELETE releases the client's controller (the persisted session survives)
"""

from fastapi import APIRouter

from healthsync.core.exceptions import ResourceNotFoundError
from healthsync.core.logging import get_logger
from healthsync.flow.dispatcher import dispatch_event, dispose_controller, get_or_create_controller
from healthsync.schemas.flow import FlowEvent
from healthsync.schemas.response import FlowSnapshot

logger = get_logger(__name__)
router = APIRouter()


@router.get("/flow/{client_id}", response_model=FlowSnapshot)
async def get_flow(client_id: str):
    """
    Current step of the client's access flow.
    """
    controller = await get_or_create_controller(client_id)
    return controller.snapshot()


@router.post("/flow/{client_id}/events", response_model=FlowSnapshot)
async def post_flow_event(client_id: str, event: FlowEvent):
    """
    Applies one user action and returns the resulting step.

    Failures of the action itself come back in `error` / `field_errors`
    with status 200; only malformed events and actions that are not
    available from the current step produce an error response.
    """
    return await dispatch_event(client_id, event)


@router.delete("/flow/{client_id}")
async def delete_flow(client_id: str):
    if not await dispose_controller(client_id):
        raise ResourceNotFoundError(f"No flow for client {client_id}")
    return {"status": "disposed", "client_id": client_id}
