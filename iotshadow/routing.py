"""Products, send requests, pending down-message contexts and rule records."""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

log = logging.getLogger(__name__)

SERVICE_DIR_UP = "up"


class ProductNotFoundError(LookupError):
    """No product is registered under the requested key."""


class ContextExistsError(RuntimeError):
    """A down-message context with the same id is already pending."""


class ContextNotFoundError(LookupError):
    """No pending down-message context has the requested id."""


class MsgType(str, Enum):
    """Kinds of device messages as they appear in topics."""

    PROPERTY = "property"
    PROPERTY_REPLY = "property_reply"
    EVENT = "event"
    SERVICE = "service"
    SERVICE_REPLY = "service_reply"


@dataclass
class SendMsgRequest:
    """A message to send down to a device."""

    sn: str
    context_id: str = ""
    code: str = ""
    msg_type: str = ""
    payload: bytes = b""
    timeout: int = 0


@dataclass
class SendMsgResponse:
    """Result of a send; ``message`` is the device reply for synchronous sends."""

    code: int = 0
    msg: str = ""
    message: Any = None


def _by_code(items: Iterable[dict[str, Any]] | None) -> dict[str, dict[str, Any]]:
    return {item["code"]: item for item in items or ()}


@dataclass
class Product:
    """A product and its indexed thing model.

    ``thing_info`` may be given as a JSON document or a mapping; it is parsed
    and indexed into property, event and service maps by code.
    """

    pk: str
    transform: str = ""
    protocol: str = ""
    type: str = ""
    thing_info: Any = field(default_factory=dict)
    property_map: dict[str, dict[str, Any]] = field(init=False, default_factory=dict)
    event_map: dict[str, dict[str, Any]] = field(init=False, default_factory=dict)
    up_service_map: dict[str, dict[str, Any]] = field(init=False, default_factory=dict)
    down_service_map: dict[str, dict[str, Any]] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.thing_info, (str, bytes, bytearray)):
            info = json.loads(self.thing_info)
        else:
            info = dict(self.thing_info or {})
        self.thing_info = info
        self.property_map = _by_code(info.get("properties"))
        self.event_map = _by_code(info.get("events"))
        for event in self.event_map.values():
            event["param_map"] = _by_code(event.get("params"))
        self.up_service_map = {}
        self.down_service_map = {}
        for service in info.get("services") or ():
            target = self.up_service_map if service.get("dir") == SERVICE_DIR_UP else self.down_service_map
            target[service["code"]] = service
            service["input_map"] = _by_code(service.get("input"))
            service["output_map"] = _by_code(service.get("output"))


class ProductRegistry:
    """Products known to the router, by product key."""

    def __init__(self) -> None:
        self._products: dict[str, Product] = {}

    def add_or_update(self, product: Product) -> None:
        action = "update" if product.pk in self._products else "add"
        self._products[product.pk] = product
        log.info("[forwarding] %s product pk:%s", action, product.pk)

    def remove(self, product: Product) -> None:
        self._products.pop(product.pk, None)
        log.info("[forwarding] delete product pk:%s", product.pk)

    def get(self, pk: str) -> Product:
        try:
            return self._products[pk]
        except KeyError:
            raise ProductNotFoundError(f"pk:{pk} not found") from None

    def products_for(self, pks: Iterable[str]) -> dict[str, Product]:
        """Map every key in ``pks`` to its product; any unknown key raises."""
        return {pk: self.get(pk) for pk in pks}


@dataclass
class DownMsgContext:
    """A synchronous send waiting for the device's reply."""

    context_id: str
    outbox: queue.Queue = field(default_factory=queue.Queue)
    cancelled: threading.Event = field(default_factory=threading.Event)


class DownMsgContexts:
    """Pending down-message contexts keyed by context id."""

    def __init__(self) -> None:
        self._contexts: dict[str, DownMsgContext] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def add(self, context: DownMsgContext) -> None:
        """Register ``context``; an id already pending is replaced and reported."""
        exists = context.context_id in self._contexts
        self._contexts[context.context_id] = context
        if exists:
            raise ContextExistsError(f"context:{context.context_id} exist")
        log.info("[forwarding] DownMsgContexts add contextId:%s", context.context_id)

    def discard(self, context_id: str) -> None:
        self._contexts.pop(context_id, None)
        log.info("[forwarding] DownMsgContexts del contextId:%s", context_id)

    def pop(self, context_id: str) -> DownMsgContext:
        try:
            context = self._contexts.pop(context_id)
        except KeyError:
            raise ContextNotFoundError(f"contextId:{context_id} not found") from None
        log.info("[forwarding] DownMsgContexts del contextId:%s", context_id)
        return context


@dataclass
class RuleInfo:
    """A loaded rule with its parsed trigger and action tree."""

    id: str
    name: str = ""
    trigger_type: str = ""
    trigger: str = ""
    trigger_info: Any = None
    action: str = ""
    action_info: Any = None
    is_close: bool = False
    running_id: str = ""
    cancelled: threading.Event = field(default_factory=threading.Event)


@dataclass
class WatchEvent:
    """A message delivered to a watcher, with rule evaluation results."""

    message: Any = None
    rule_info: RuleInfo | None = None
    switch_pass: bool = False