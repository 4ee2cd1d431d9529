"""Watch subscriptions on device message subjects ``pk.sn.msg_type.code``."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

from iotshadow.match import (
    FULL_WILDCARD,
    SINGLE_WILDCARD,
    Match,
    MatchError,
    Subscription,
)
from iotshadow.routing import WatchEvent

log = logging.getLogger(__name__)

RuleFilter = Callable[[Subscription, Any], bool]


def _token(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _extend(token_lists: list[list[str]], tokens: Sequence[str]) -> list[list[str]]:
    if not tokens:
        return [current + [SINGLE_WILDCARD] for current in token_lists]
    if len(tokens) == 1:
        return [current + [tokens[0]] for current in token_lists]
    return [current + [token] for token in tokens for current in token_lists]


def _collapse(tokens: list[str]) -> list[str]:
    """Replace two or more trailing '*' tokens with a single '>'."""
    size = len(tokens)
    for index in range(size - 1, -1, -1):
        if tokens[index] != SINGLE_WILDCARD:
            if index <= size - 3:
                return tokens[: index + 1] + [FULL_WILDCARD]
            return tokens
    return tokens


def expand_watch_tokens(
    pks: Iterable[Any] | None,
    sns: Iterable[Any] | None,
    msg_types: Iterable[Any] | None,
    codes: Iterable[Any] | None,
) -> list[list[str]]:
    """Expand the watch filters into the subjects to subscribe to.

    An empty filter matches any token; several values fan out into one
    subject each. Two or more trailing wildcards collapse into '>'.
    """
    token_lists: list[list[str]] = [[]]
    for values in (pks, sns, msg_types, codes):
        token_lists = _extend(token_lists, [_token(v) for v in values or ()])
    return [_collapse(tokens) for tokens in token_lists]


def _deliver(sink: Any, event: Any) -> None:
    put = getattr(sink, "put", None)
    if callable(put):
        put(event)
    else:
        sink(event)


class WatchRegistry:
    """Watch subscriptions grouped by the context that registered them."""

    def __init__(self, rule_filter: RuleFilter | None = None) -> None:
        self._match = Match()
        self._by_context: dict[str, list[Subscription]] = {}
        self._rule_filter = rule_filter

    def __contains__(self, context_id: object) -> bool:
        return context_id in self._by_context

    def add(
        self,
        context_id: str,
        pks: Iterable[Any] | None = None,
        sns: Iterable[Any] | None = None,
        msg_types: Iterable[Any] | None = None,
        codes: Iterable[Any] | None = None,
        sink: Any = None,
        origin: str = "route",
        rule_info: Any = None,
    ) -> list[Subscription]:
        """Subscribe ``context_id``; an earlier watch of the same context is replaced."""
        if context_id in self._by_context:
            self.cancel(context_id)
        subscriptions: list[Subscription] = []
        for tokens in expand_watch_tokens(pks, sns, msg_types, codes):
            log.info("[forwarding] addWatch contextId:%s sub topic:%s", context_id, tokens)
            sub = Subscription(
                context_id=context_id,
                tokens=tokens,
                sink=sink,
                origin=origin,
                rule_info=rule_info,
            )
            try:
                self._match.insert(sub)
            except MatchError as exc:
                log.error("[forwarding] addWatch contextId:%s insert fail:%s", context_id, exc)
                continue
            subscriptions.append(sub)
        self._by_context[context_id] = subscriptions
        return subscriptions

    def cancel(self, context_id: str) -> None:
        """Drop every subscription of ``context_id``; unknown ids are ignored."""
        log.info("[forwarding] cancelWatch contextId:%s start", context_id)
        subscriptions = self._by_context.pop(context_id, None)
        if subscriptions is None:
            return
        for sub in subscriptions:
            sub.cancelled.set()
            try:
                self._match.remove(sub)
            except MatchError as exc:
                log.error("[forwarding] cancelWatch contextId:%s remove fail:%s", context_id, exc)

    def notify(self, pk: Any, sn: Any, msg_type: Any, code: Any, event: Any) -> list[Subscription]:
        """Deliver ``event`` to every live watcher of the subject; return those reached."""
        tokens = [_token(pk), _token(sn), _token(msg_type), _token(code)]
        matched = self._match.match(tokens)
        if not matched:
            return []
        first = matched[0]
        if first.origin == "rule":
            if isinstance(event, WatchEvent):
                event.rule_info = first.rule_info
            if self._rule_filter is not None and not self._rule_filter(first, event):
                return []
        delivered: list[Subscription] = []
        for sub in matched:
            if sub.cancelled.is_set() or sub.sink is None:
                log.info("[forwarding] watch contextId:%s is done", sub.context_id)
                continue
            _deliver(sub.sink, event)
            delivered.append(sub)
        return delivered