import asyncio
import logging
from typing import Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from spebit.controllers.transactions.lifecycle import TERMINAL_STATUSES
from spebit.controllers.transactions.users import transaction_row
from spebit.core.auth import decode_token
from spebit.core.config import PROCESSING_WAIT_SECONDS
from spebit.core.database import SessionLocal
from spebit.core.rbac import SAFE_REDIRECT, has_role
from spebit.core.realtime import RealtimeHub
from spebit.core.status_watcher import TransactionStatusWatcher
from spebit.core.websocket_manager import ConnectionManager
from spebit.models.transaction import Transaction
from spebit.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()

# Close codes
INVALID_TOKEN = 4001
FORBIDDEN = 4003
NOT_FOUND = 4004


def authenticate(token: str, role: Optional[str] = None) -> Optional[str]:
    """User id for a valid access token of an unblocked user holding ``role``."""
    payload = decode_token(token)
    if not payload:
        return None

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.UserID == payload["sub"]).first()
        if user is None or user.IsBlocked:
            return None
        if role and not has_role(user.UserID, role, db):
            return None
        return user.UserID
    finally:
        db.close()


async def _listen(websocket: WebSocket, manager: ConnectionManager, entity_id: str, connection_type: str):
    try:
        while True:
            data = await websocket.receive_text()
            logger.debug(f"Received message from {connection_type} {entity_id}: {data}")
    except WebSocketDisconnect:
        logger.info(f"{connection_type.capitalize()} {entity_id} disconnected")
    except Exception as e:
        logger.error(f"Error in {connection_type} websocket: {e}")
        await ConnectionManager.close(websocket, code=4000)
    finally:
        await manager.disconnect(websocket, entity_id, connection_type)


@router.websocket("/ws/user")
async def user_websocket(websocket: WebSocket, token: str = Query(...)):
    user_id = authenticate(token)
    if not user_id:
        await websocket.close(code=INVALID_TOKEN)
        return

    hub: RealtimeHub = websocket.app.state.realtime
    await hub.connections.connect(websocket, user_id, "user")
    logger.info(f"User {user_id} connected successfully")
    await _listen(websocket, hub.connections, user_id, "user")


@router.websocket("/ws/admin")
async def admin_websocket(websocket: WebSocket, token: str = Query(...)):
    admin_id = authenticate(token, role="admin")
    if not admin_id:
        logger.warning("Rejected admin websocket connection")
        await websocket.close(code=INVALID_TOKEN)
        return

    hub: RealtimeHub = websocket.app.state.realtime
    await hub.connections.connect(websocket, admin_id, "admin")
    logger.info(f"Admin {admin_id} connected successfully")
    await _listen(websocket, hub.connections, admin_id, "admin")


def _load_owned_transaction(transaction_id: str, user_id: str) -> Optional[dict]:
    db = SessionLocal()
    try:
        transaction = (
            db.query(Transaction)
            .filter(Transaction.TransactionID == transaction_id, Transaction.UserID == user_id)
            .first()
        )
        return transaction_row(transaction) if transaction else None
    finally:
        db.close()


async def _until_disconnect(websocket: WebSocket):
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


@router.websocket("/ws/transactions/{transaction_id}")
async def transaction_status_websocket(
    websocket: WebSocket, transaction_id: str, token: str = Query(...)
):
    """Holds the buyer's processing screen until an admin decides or the wait runs out."""
    user_id = authenticate(token)
    if not user_id:
        await websocket.close(code=INVALID_TOKEN)
        return

    hub: RealtimeHub = websocket.app.state.realtime

    async def on_approved(row: dict):
        await websocket.send_json(
            {
                "type": "transaction_approved",
                "data": {
                    "transaction_id": transaction_id,
                    "status": row.get("Status"),
                    "message": "Your crypto purchase has been approved successfully!",
                    "redirect": SAFE_REDIRECT,
                },
            }
        )

    async def on_rejected(row: dict):
        await websocket.send_json(
            {
                "type": "transaction_rejected",
                "data": {
                    "transaction_id": transaction_id,
                    "status": row.get("Status"),
                    "message": "Your payment has been rejected. Please try again.",
                    "admin_notes": row.get("AdminNotes"),
                    "next_step": 1,
                },
            }
        )

    async def on_timeout():
        await websocket.send_json(
            {
                "type": "transaction_processing",
                "data": {
                    "transaction_id": transaction_id,
                    "message": "Your transaction is still being processed. You'll be notified once approved.",
                },
            }
        )

    watcher = TransactionStatusWatcher(
        hub,
        transaction_id,
        on_approved,
        on_rejected,
        on_timeout=on_timeout,
        timeout=PROCESSING_WAIT_SECONDS,
    )
    # Subscribe before reading so a decision in between is not missed
    watcher.start()
    try:
        row = _load_owned_transaction(transaction_id, user_id)
        if row is None:
            watcher.close()
            await websocket.close(code=NOT_FOUND)
            return

        await websocket.accept()
        await websocket.send_json(
            {
                "type": "transaction_watching",
                "data": {
                    "transaction_id": transaction_id,
                    "status": row["Status"],
                    "processing_wait_seconds": PROCESSING_WAIT_SECONDS,
                },
            }
        )

        if row["Status"] in TERMINAL_STATUSES:
            await watcher.handle_status(row["Status"], row)
        else:
            waiting = asyncio.create_task(watcher.wait())
            listening = asyncio.create_task(_until_disconnect(websocket))
            done, pending = await asyncio.wait(
                {waiting, listening}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            if waiting in done:
                logger.info(f"Watcher for transaction {transaction_id} finished: {waiting.result()}")
            else:
                logger.info(f"Client stopped watching transaction {transaction_id}")
                return
        await ConnectionManager.close(websocket)
    finally:
        watcher.close()
