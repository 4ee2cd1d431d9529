import json

import pytest

from iotshadow.routing import (
    ContextExistsError,
    ContextNotFoundError,
    DownMsgContext,
    DownMsgContexts,
    MsgType,
    Product,
    ProductNotFoundError,
    ProductRegistry,
    SendMsgRequest,
    SendMsgResponse,
)

THING = {
    "properties": [{"code": "temp"}, {"code": "hum"}],
    "events": [{"code": "alarm", "params": [{"code": "level"}]}],
    "services": [
        {"code": "report", "dir": "up", "input": [{"code": "a"}], "output": []},
        {"code": "reboot", "dir": "down", "input": [], "output": [{"code": "ok"}]},
    ],
}


def test_product_indexes_thing_model_from_json():
    p = Product("pk1", thing_info=json.dumps(THING))
    assert sorted(p.property_map) == ["hum", "temp"]
    assert list(p.event_map["alarm"]["param_map"]) == ["level"]
    assert list(p.up_service_map) == ["report"]
    assert list(p.down_service_map) == ["reboot"]
    assert list(p.up_service_map["report"]["input_map"]) == ["a"]
    assert list(p.down_service_map["reboot"]["output_map"]) == ["ok"]


def test_product_bad_json_raises():
    with pytest.raises(ValueError):
        Product("pk1", thing_info="{not json")


def test_registry_get_and_replace():
    reg = ProductRegistry()
    first = Product("pk1")
    second = Product("pk1", protocol="mqtt")
    reg.add_or_update(first)
    assert reg.get("pk1") is first
    reg.add_or_update(second)
    assert reg.get("pk1") is second


def test_registry_remove_and_missing():
    reg = ProductRegistry()
    p = Product("pk1")
    reg.add_or_update(p)
    reg.remove(p)
    with pytest.raises(ProductNotFoundError, match="pk:pk1 not found"):
        reg.get("pk1")


def test_products_for():
    reg = ProductRegistry()
    reg.add_or_update(Product("a"))
    reg.add_or_update(Product("b"))
    assert sorted(reg.products_for(["a", "b"])) == ["a", "b"]
    with pytest.raises(ProductNotFoundError):
        reg.products_for(["a", "c"])


def test_contexts_add_pop():
    ctxs = DownMsgContexts()
    c = DownMsgContext("c1")
    ctxs.add(c)
    assert len(ctxs) == 1
    assert ctxs.pop("c1") is c
    assert len(ctxs) == 0
    with pytest.raises(ContextNotFoundError):
        ctxs.pop("c1")


def test_contexts_duplicate_raises():
    ctxs = DownMsgContexts()
    ctxs.add(DownMsgContext("c1"))
    replacement = DownMsgContext("c1")
    with pytest.raises(ContextExistsError):
        ctxs.add(replacement)
    assert ctxs.pop("c1") is replacement


def test_contexts_discard_is_quiet():
    ctxs = DownMsgContexts()
    ctxs.discard("none")
    ctxs.add(DownMsgContext("c1"))
    ctxs.discard("c1")
    assert len(ctxs) == 0


def test_msg_type_values():
    assert MsgType("service") is MsgType.SERVICE
    assert MsgType.SERVICE_REPLY.value == "service_reply"
    assert MsgType.PROPERTY == "property"


def test_request_and_response_defaults():
    req = SendMsgRequest("sn1", payload=b"{}")
    assert (req.context_id, req.timeout, req.payload) == ("", 0, b"{}")
    resp = SendMsgResponse()
    assert (resp.code, resp.msg, resp.message) == (0, "", None)