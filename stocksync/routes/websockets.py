# stocksync/routes/websockets.py
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from stocksync.core.enums import InventoryDataset
from stocksync.core.exceptions import BaseServiceError
from stocksync.schemas.snapshot import InventorySnapshot
from stocksync.services.websockets.manager import manager

logger = logging.getLogger(__name__)

router = APIRouter()


def snapshot_message(snapshot: InventorySnapshot) -> dict:
    return {"type": "snapshot", **snapshot.model_dump(mode="json", by_alias=True)}


@router.websocket("/ws/inventory/{dataset}")
async def inventory_feed(websocket: WebSocket, dataset: str):
    """
    One consumer per connection.

    Sends a ``snapshot`` message on every visible change and accepts
    ``{"action": "load_more"}`` and ``{"action": "refresh"}``. Committed
    adjustments arrive as ``stock_adjusted`` broadcasts.
    """
    try:
        dataset = InventoryDataset(dataset)
    except ValueError:
        await websocket.close(code=1008)
        return

    service = websocket.app.state.sync_service
    await manager.connect(websocket, dataset.value)
    consumer = await service.open_consumer(dataset)
    try:
        await consumer.wait_until_loaded(timeout=service.settings.LOAD_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning(f"No {dataset.value} data yet; sending a loading snapshot")

    outbox: asyncio.Queue = asyncio.Queue()
    consumer.subscribe(lambda snapshot: outbox.put_nowait(snapshot_message(snapshot)))
    outbox.put_nowait(snapshot_message(consumer.get_snapshot()))

    async def sender():
        while True:
            message = await outbox.get()
            await manager.send_personal_message(message, websocket)

    sender_task = asyncio.ensure_future(sender())
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                outbox.put_nowait({"type": "error", "message": "Messages must be JSON"})
                continue
            action = data.get("action") if isinstance(data, dict) else None
            if action == "load_more":
                consumer.request_more()
            elif action == "refresh":
                try:
                    await consumer.refresh()
                except BaseServiceError as e:
                    outbox.put_nowait({"type": "error", "message": str(e)})
            else:
                outbox.put_nowait({"type": "error", "message": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected from {dataset.value} feed")
    finally:
        sender_task.cancel()
        service.release_consumer(consumer)
        manager.disconnect(websocket)
