"""WebSocket handlers for the mentor chat panel and the challenge view."""

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from artifex_coach.chat.session import ChatMode
from artifex_coach.errors import CoachError, UserInputInvalid
from artifex_coach.models.challenge import TimerSnapshot
from artifex_coach.session import CoachSession

logger = structlog.get_logger()


async def _send(websocket: WebSocket, data: dict) -> None:
    """Send a message to the browser WebSocket."""
    try:
        await websocket.send_json(data)
    except Exception:
        logger.warning("browser_send_failed", event_type=data.get("type"))


async def handle_chat_websocket(websocket: WebSocket, coach: CoachSession) -> None:
    """One chat panel instance: a fresh conversational context per connection."""
    await websocket.accept()
    controller = coach.create_chat()
    await _send(websocket, {
        "type": "chat_history",
        "messages": [m.model_dump(mode="json") for m in controller.messages],
    })

    try:
        while True:
            data = await websocket.receive_json()
            if data.get("type", "") != "message":
                continue

            try:
                mode = ChatMode(data.get("mode", ChatMode.CHAT.value))
            except ValueError:
                await _send(websocket, {"type": "error", "detail": "Unknown chat mode"})
                continue

            reply = None
            try:
                async for reply in controller.send_message(
                    data.get("text", ""), image=data.get("image"), mode=mode
                ):
                    await _send(websocket, {
                        "type": "chat_fragment",
                        "message_id": reply.id,
                        "text": reply.text,
                    })
            except CoachError as e:
                await _send(websocket, {"type": "error", "detail": str(e)})
                continue

            if reply is not None:
                await _send(websocket, {
                    "type": "chat_message",
                    "message": reply.model_dump(mode="json"),
                })

    except WebSocketDisconnect:
        logger.info("chat_panel_closed", messages=len(controller.messages))
    except Exception:
        logger.exception("chat_websocket_error")


async def handle_challenge_websocket(
    websocket: WebSocket, coach: CoachSession, challenge_id: str
) -> None:
    """Challenge view: pushes timer ticks; leaving the view cancels the run."""
    active = coach.get_challenge(challenge_id)
    if active is None:
        await websocket.close(code=1008, reason="Challenge not found")
        return
    await websocket.accept()

    async def on_tick(snapshot: TimerSnapshot) -> None:
        await _send(websocket, {"type": "timer_tick", **snapshot.model_dump(mode="json")})

    active.timer.on_tick(on_tick)
    await _send(websocket, {
        "type": "timer_tick",
        **active.timer.snapshot().model_dump(mode="json"),
    })

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "")

            if msg_type == "hint":
                try:
                    hint = await active.request_hint()
                except UserInputInvalid as e:
                    await _send(websocket, {"type": "error", "detail": str(e)})
                    continue
                await _send(websocket, {
                    "type": "hint",
                    "hint": hint,
                    "index": len(active.hints),
                    **active.timer.snapshot().model_dump(mode="json"),
                })

            elif msg_type == "cancel":
                await coach.cancel_challenge(challenge_id)
                await _send(websocket, {"type": "challenge_cancelled"})
                break

    except WebSocketDisconnect:
        logger.info("challenge_view_closed", challenge_id=challenge_id)
    except Exception:
        logger.exception("challenge_websocket_error", challenge_id=challenge_id)
    finally:
        active.timer.remove_tick_callback(on_tick)
        # Submitted runs are already removed; anything else is abandoned
        await coach.cancel_challenge(challenge_id)
