import logging
from typing import Optional
from datetime import datetime, timezone
from fastapi import BackgroundTasks
from spebit.core.realtime import RealtimeHub

logger = logging.getLogger(__name__)


async def emit_event(
    hub: RealtimeHub,
    event_type: str,
    data: dict,
    user_id: Optional[str] = None,
    admins: bool = False,
    broadcast: bool = False,
    background_tasks: Optional[BackgroundTasks] = None,
):
    message = {
        "type": event_type,
        "data": data,
        "timestamp": str(datetime.now(timezone.utc)),
    }

    async def send_notification():
        try:
            if broadcast:
                await hub.connections.broadcast(message)
            elif user_id:
                await hub.connections.send_personal_message(message, user_id, "user")
            elif admins:
                await hub.connections.send_to_type(message, "admin")
        except Exception as e:
            logger.error(f"Failed to emit event {event_type}: {e}")

    if background_tasks:
        background_tasks.add_task(send_notification)
    else:
        await send_notification()
