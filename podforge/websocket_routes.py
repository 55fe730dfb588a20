"""
WebSocket Routes

Streams one user's wizard events (step changes, progress, generation
outcomes, stale views) to every socket that user has open.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/wizard")
async def wizard_events(websocket: WebSocket, user_id: Optional[str] = Query(None)):
    if not user_id:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    registry = websocket.app.state.registry
    emitter = registry.emitter_for(user_id)
    queue = emitter.subscribe()

    await websocket.send_json({
        "type": "snapshot",
        "data": registry.get(user_id).snapshot(),
    })

    async def stream_events():
        while True:
            event = await queue.get()
            await websocket.send_json(event.to_dict())

    async def receive_messages():
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue
            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            elif message.get("type") == "snapshot":
                await websocket.send_json({"type": "snapshot", "data": registry.get(user_id).snapshot()})

    sender = asyncio.create_task(stream_events())
    receiver = asyncio.create_task(receive_messages())
    try:
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error("Wizard socket for %s failed: %s", user_id, error)
    finally:
        emitter.unsubscribe(queue)
        logger.info("Wizard socket for %s disconnected", user_id)
