import itertools
import json
from datetime import datetime

import pytest

from iotshadow.downlink import (
    GATEWAY_PROXY_CODE,
    Device,
    DownlinkError,
    apply_properties,
    build_down_log,
    build_gateway_request,
    down_topic,
    log_topic,
    send_result,
    up_topic,
)
from iotshadow.routing import Product, SendMsgRequest


def _ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


def test_down_topic_format():
    assert down_topic(3, "pk1", "dev-a", "service", "clean") == "iot.down.3.pk1.dev-a.service.clean"


def test_up_topic_format():
    assert up_topic(0, "pk1", "dev-a", "property", "batch") == "iot.up.0.pk1.dev-a.property.batch"


def test_log_topic_replaces_dots():
    topic = down_topic(1, "pk", "sn", "service", "x")
    assert log_topic(topic) == "iot/down/1/pk/sn/service/x"
    assert "." not in log_topic(topic)


def test_send_result_success_and_failure():
    assert send_result(None) == "{}"
    assert json.loads(send_result(DownlinkError("boom"))) == {"code": -1, "msg": "boom"}


def test_apply_properties_updates_shadow_and_version():
    device = Device(sn="dev-a", shadow_version=4)
    assert apply_properties(device, {"temp": 21, "level": 3}, 1000) is True
    assert device.shadow_version == 5
    props = device.shadow["properties"]
    assert props["temp"]["current"] == {"value": 21, "updated_time": 1000}
    assert props["level"]["current"]["value"] == 3


def test_apply_properties_keeps_other_properties():
    device = Device(sn="dev-a")
    apply_properties(device, {"a": 1}, 10)
    apply_properties(device, {"b": 2}, 20)
    props = device.shadow["properties"]
    assert props["a"]["current"] == {"value": 1, "updated_time": 10}
    assert props["b"]["current"]["updated_time"] == 20
    assert device.shadow_version == 2


def test_apply_properties_empty_leaves_version():
    device = Device(sn="dev-a", shadow_version=7)
    assert apply_properties(device, {}, 5) is False
    assert device.shadow_version == 7


def test_build_gateway_request_wraps_payload():
    request = SendMsgRequest(
        sn="child", context_id="ctx", code="clean", msg_type="service",
        payload=b'{"params": {"level": 1}}', timeout=500,
    )
    out = build_gateway_request(request, "gw", _ids(), 1234)
    assert out.sn == "gw"
    assert out.code == GATEWAY_PROXY_CODE
    assert out.msg_type == "service"
    assert out.timeout == 500
    assert out.context_id == "id-3"
    body = json.loads(out.payload)
    assert body["id"] == "id-1"
    assert body["context_id"] == "id-2"
    assert body["time"] == 1234
    assert body["sub_msgs"] == [
        {"sn": "child", "msg": {"params": {"level": 1}, "identify": "clean"}}
    ]


def test_build_gateway_request_rejects_bad_json():
    request = SendMsgRequest(sn="child", code="c", msg_type="service", payload=b"not json")
    with pytest.raises(DownlinkError):
        build_gateway_request(request, "gw", _ids(), 0)


def test_build_gateway_request_rejects_non_object():
    request = SendMsgRequest(sn="child", code="c", msg_type="service", payload=b"[1, 2]")
    with pytest.raises(DownlinkError):
        build_gateway_request(request, "gw", _ids(), 0)


def test_build_gateway_request_rejects_same_sn():
    request = SendMsgRequest(sn="gw", code="c", msg_type="service", payload=b"{}")
    with pytest.raises(DownlinkError):
        build_gateway_request(request, "gw", _ids(), 0)


def test_build_down_log_success():
    request = SendMsgRequest(
        sn="dev-a", context_id="ctx", code="clean", msg_type="service", payload=b'{"a":1}'
    )
    device = Device(sn="dev-a", group=2, pk="pk1")
    product = Product(pk="pk1")
    now = datetime(2024, 1, 2, 3, 4, 5)
    entry = build_down_log(request, device, product, "m1", None, now)
    assert entry.pk == "pk1"
    assert entry.sn == "dev-a"
    assert entry.content == '{"a":1}'
    assert entry.topic == log_topic(down_topic(2, "pk1", "dev-a", "service", "clean"))
    assert entry.log_type == "service"
    assert entry.dir == "down"
    assert entry.ts == now
    assert entry.msg_id == "m1"
    assert entry.context_id == "ctx"
    assert entry.result == "{}"
    assert entry.code == "clean"


def test_build_down_log_failure_result():
    request = SendMsgRequest(sn="dev-a", code="x", msg_type="property", payload=b"{}")
    device = Device(sn="dev-a", pk="pk1")
    entry = build_down_log(request, device, Product(pk="pk1"), "m2", "offline", datetime(2024, 1, 1))
    assert json.loads(entry.result) == {"code": -1, "msg": "offline"}
    assert entry.result == send_result("offline")