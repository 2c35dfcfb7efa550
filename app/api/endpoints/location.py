# app/api/endpoints/location.py
import json
import logging
from typing import Any

from fastapi import APIRouter, Request

from app.errors import PayloadTooLarge, PayloadValidationError
from app.schemas.location import validate_location
from app.services.security import enforce_bearer_token

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_json(request: Request, max_bytes: int) -> Any:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLarge()

    # chunked bodies carry no content-length, so stop as soon as the limit is passed
    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise PayloadTooLarge()
        chunks.append(chunk)

    raw = b"".join(chunks)
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # left for the validator to reject
        return None


def _device_key(body: Any) -> str | None:
    if isinstance(body, dict):
        device_id = body.get("deviceId", body.get("device_id"))
        if isinstance(device_id, str) and device_id:
            return device_id
    return None


@router.post("/send-location")
async def send_location(request: Request):
    state = request.app.state

    # order matters: auth, ip limit, device limit, payload, send
    enforce_bearer_token(request)

    client_ip = request.client.host if request.client else "unknown"
    state.ip_limiter.check(client_ip)

    body = await _read_json(request, state.settings.max_body_bytes)
    state.device_limiter.check(_device_key(body))

    try:
        report = validate_location(body)
    except PayloadValidationError as e:
        logger.info(f"[PAYLOAD] rejected from={client_ip} issues={e.issues}")
        raise

    await state.dispatcher.dispatch(report)
    return {"ok": True}
