"""Down-link message shaping: topics, gateway wrapping, shadow updates and logs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping

from iotshadow.msglog import MsgLog
from iotshadow.routing import Product, SendMsgRequest

GATEWAY_PROXY_CODE = "gateway_proxy"
DIR_DOWN = "down"
DIR_UP = "up"


class DownlinkError(Exception):
    """A message cannot be sent down to a device."""


def _empty_shadow() -> dict[str, Any]:
    return {"properties": {}}


@dataclass
class Device:
    """A device as cached by the router, with its shadow document.

    The shadow maps property codes to ``{"current": {"value", "updated_time"}}``
    under its ``"properties"`` key.
    """

    sn: str
    p_sn: str = ""
    group: int = 0
    pk: str = ""
    shadow: dict[str, Any] = field(default_factory=_empty_shadow)
    shadow_version: int = 0


def down_topic(group: int, pk: str, sn: str, msg_type: str, code: str) -> str:
    """Subject of a message sent down to a device."""
    return f"iot.down.{group}.{pk}.{sn}.{msg_type}.{code}"


def up_topic(group: int, pk: str, sn: str, msg_type: str, code: str) -> str:
    """Subject of a message coming up from a device."""
    return f"iot.up.{group}.{pk}.{sn}.{msg_type}.{code}"


def log_topic(topic: str) -> str:
    """The form of a subject stored in the message log."""
    return topic.replace(".", "/")


def send_result(error: BaseException | str | None) -> str:
    """JSON result recorded for a send: empty on success, code -1 on failure."""
    if error is None:
        return "{}"
    return f'{{"code":-1,"msg":"{error}"}}'


def apply_properties(device: Device, params: Mapping[str, Any], now_ms: int) -> bool:
    """Write reported property values into the shadow.

    Bumps the shadow version when anything was written and says whether it was.
    """
    properties = device.shadow.setdefault("properties", {})
    changed = False
    for code, value in params.items():
        entry = properties.get(code)
        if entry is None:
            entry = {"current": {}}
        current = entry.setdefault("current", {})
        current["value"] = value
        current["updated_time"] = now_ms
        properties[code] = entry
        changed = True
    if changed:
        device.shadow_version += 1
    return changed


def _payload_text(payload: bytes | str) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    return payload


def build_gateway_request(
    request: SendMsgRequest,
    gateway_sn: str,
    make_id: Callable[[], str],
    now_ms: int,
) -> SendMsgRequest:
    """Wrap a request for a sub-device into a proxy request for its gateway."""
    if gateway_sn == request.sn:
        raise DownlinkError(f"gateway sn is the same as device sn:{request.sn}")
    try:
        source = json.loads(_payload_text(request.payload))
    except ValueError as exc:
        raise DownlinkError(f"payload is not valid json:{exc}") from exc
    if not isinstance(source, dict):
        raise DownlinkError("payload is not a json object")
    source["identify"] = request.code
    wrapped = {
        "id": make_id(),
        "context_id": make_id(),
        "time": now_ms,
        "sub_msgs": [{"sn": request.sn, "msg": source}],
    }
    return SendMsgRequest(
        sn=gateway_sn,
        context_id=make_id(),
        code=GATEWAY_PROXY_CODE,
        msg_type=request.msg_type,
        payload=json.dumps(wrapped, ensure_ascii=False).encode("utf-8"),
        timeout=request.timeout,
    )


def build_down_log(
    request: SendMsgRequest,
    device: Device,
    product: Product,
    msg_id: str,
    error: BaseException | str | None,
    now: datetime,
) -> MsgLog:
    """Log record of a down-link send and its outcome."""
    topic = down_topic(device.group, product.pk, device.sn, request.msg_type, request.code)
    return MsgLog(
        pk=product.pk,
        sn=device.sn,
        content=_payload_text(request.payload),
        topic=log_topic(topic),
        log_type=request.msg_type,
        dir=DIR_DOWN,
        ts=now,
        msg_id=msg_id,
        context_id=request.context_id,
        result=send_result(error),
        code=request.code,
    )