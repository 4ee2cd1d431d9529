# iotshadow

Building blocks for the device-shadow side of an IoT engine. The package
indexes watch subscriptions on device message subjects and builds and
runs message-log queries. It stores device shadow records and holds
products and pending replies. It also shapes messages sent down to
devices, including those that go through a gateway.

It has no third-party dependencies.

## Modules

### `iotshadow.match`

`Match` is a subject tree of `Subscription` objects. A subject is a list of
tokens. `*` matches exactly one token and `>` matches the rest.

- `Match.insert(sub)` registers a subscription. An empty token, or a token
  after `>`, raises `InvalidSubjectError`.
- `Match.match(tokens)` returns the subscriptions whose subject matches.
- `Match.remove(sub)` unregisters a subscription and prunes empty branches.
  It raises `SubscriptionNotFoundError` when the subscription is not there.
- `len(tree)` is the number of registered subscriptions.

Both errors derive from `MatchError`.

### `iotshadow.paging`

- `SelectQuery` is an immutable SELECT builder with `where`, `order_by`,
  `limit` and `offset`. `to_sql()` returns the statement with `?`
  placeholders and its argument list.
- `PageInfo` holds a time range in epoch milliseconds, a page number and a
  page size. `apply_time_range(query)` adds only the time conditions.
  `apply(query)` also adds the limit and offset. Pages count from 1, and
  page 0 means no offset.
- `OrderBy` names a sort field. Its `sort` is 0 for ascending and 1 for
  descending.

### `iotshadow.msglog`

- `MsgLog` is one logged device message. `MsgLogFilter` selects rows, and
  its empty fields are ignored.
- The SQL helpers are `create_stable_sql()`, `count_query(flt, page)`,
  `page_query(flt, page)` (newest first), `insert_sql(log)`,
  `apply_filter`, `array_to_sql`, `stable_name()` and
  `device_table_name(pk, sn)`. `insert_sql` writes the values into the
  statement as they are, without escaping.
- `MsgLogRepository(connection)` runs these statements on any DB-API
  connection that takes `?` placeholders. Its methods are `create_stable`,
  `count`, `page` and `insert`.

### `iotshadow.shadow_store`

`ShadowStore(path=":memory:")` keeps `ShadowRecord` rows in a SQLite
table named `t_shadow`. It can be used as a context manager.

- Records are read with `add`, `get`, `get_by_sn`, `list` and
  `page(page_index, page_size)`. `page` returns the items, newest first,
  together with the live total.
- `delete` only sets a soft-delete flag. Deleted rows are hidden from
  every read.
- `list_between_group_and_pk(pks, start, end)` returns live records whose
  group lies between `start` and `end`. When `pks` is given, only those
  products are returned. `list_in_sn(sns)` returns live records for the
  given serial numbers.
- `update`, `update_shadow(sn, shadow, version)` and
  `update_parent(shadow_id, p_sn)` change records.
- `get` and `get_by_sn` raise `ShadowNotFoundError` when no live record
  matches.

### `iotshadow.routing`

- `Product` parses its thing model from JSON or a mapping. It indexes the
  model by code into `property_map`, `event_map`, `up_service_map` and
  `down_service_map`.
- `ProductRegistry` has `add_or_update`, `remove`, `get` and
  `products_for`. `get` raises `ProductNotFoundError` for an unknown key.
- `DownMsgContexts` tracks `DownMsgContext` replies that are still pending.
  `add` raises `ContextExistsError` when it replaces a pending id.
  `pop` raises `ContextNotFoundError` for an unknown id. `discard` ignores
  unknown ids.
- The module also defines `MsgType`, `SendMsgRequest`, `SendMsgResponse`,
  `RuleInfo` and `WatchEvent`.

### `iotshadow.watch`

- `expand_watch_tokens(pks, sns, msg_types, codes)` turns watch filters
  into `pk.sn.msg_type.code` subjects.
  - An empty filter becomes `*`.
  - Several values in one filter fan out into one subject each.
  - Two or more trailing `*` collapse into `>`.
- `WatchRegistry` groups subscriptions by context id.
  - `add` replaces an earlier watch of the same context.
  - `cancel` removes a context's subscriptions.
  - `notify(pk, sn, msg_type, code, event)` hands the event to every live
    sink and returns the subscriptions it reached. A sink is either
    something with a `put` method, such as a `queue.Queue`, or a callable.
  - When the first match comes from a rule, the optional `rule_filter`
    given to the registry decides whether anyone is notified.

### `iotshadow.downlink`

- `Device` is a cached device with its shadow document.
- `down_topic`, `up_topic` and `log_topic` build subjects.
- `send_result(error)` gives the JSON result recorded for a send.
- `apply_properties(device, params, now_ms)` writes reported values into
  the shadow and bumps the version when anything changed.
- `build_gateway_request(request, gateway_sn, make_id, now_ms)` wraps a
  sub-device request into a gateway proxy request. It raises
  `DownlinkError` when the payload is not a JSON object or when the
  gateway and device serial numbers are the same.
- `build_down_log(...)` builds the `MsgLog` record of a send.

## Example

```python
import queue

from iotshadow.match import Match, Subscription
from iotshadow.routing import WatchEvent
from iotshadow.watch import WatchRegistry

tree = Match()
sub = Subscription(context_id="watch-1", tokens=["pk1", "*", ">"])
tree.insert(sub)
assert tree.match(["pk1", "device-a", "property", "batch"]) == [sub]
tree.remove(sub)
assert len(tree) == 0

inbox = queue.Queue()
watches = WatchRegistry()
watches.add("watch-2", pks=["pk1"], sink=inbox)
event = WatchEvent(message={"sn": "device-a"})
watches.notify("pk1", "device-a", "property", "batch", event)
assert inbox.get_nowait() is event
```

## What the package does not do

The package provides building blocks only:

- It does not connect to a message bus.
- It serves no RPC or HTTP API.
- It does not execute rule action trees. `RuleInfo` only carries a parsed
  rule.
- It has no command-line program.

A service that uses these pieces has to do several things itself:

- feed incoming messages to `WatchRegistry.notify`;
- publish the requests that `build_gateway_request` returns;
- persist shadows through `ShadowStore`;
- write `MsgLog` records through `MsgLogRepository`.

## Running the tests

```
pip install -e .[test]
pytest
```