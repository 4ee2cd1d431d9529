"""Subscription index keyed by token subjects with '*' and '>' wildcards."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)

SINGLE_WILDCARD = "*"
FULL_WILDCARD = ">"


class MatchError(Exception):
    """Base error of the subscription index."""


class InvalidSubjectError(MatchError):
    """The token list of a subscription is not a valid subject."""


class SubscriptionNotFoundError(MatchError):
    """The subscription is not registered in the index."""


@dataclass(eq=False)
class Subscription:
    """A registered interest in messages whose subject matches ``tokens``."""

    context_id: str
    tokens: list[str]
    sink: Any = None
    origin: str = "route"
    rule_info: Any = None
    cancelled: threading.Event = field(default_factory=threading.Event)

    @property
    def subject(self) -> str:
        return ".".join(self.tokens)


class _Node:
    __slots__ = ("next", "subs")

    def __init__(self) -> None:
        self.next: _Level | None = None
        self.subs: dict[Subscription, None] = {}

    def is_empty(self) -> bool:
        return not self.subs and (self.next is None or self.next.num_nodes() == 0)


class _Level:
    __slots__ = ("nodes", "pwc", "fwc")

    def __init__(self) -> None:
        self.nodes: dict[str, _Node] = {}
        self.pwc: _Node | None = None
        self.fwc: _Node | None = None

    def child(self, token: str) -> _Node | None:
        if token == SINGLE_WILDCARD:
            return self.pwc
        if token == FULL_WILDCARD:
            return self.fwc
        return self.nodes.get(token)

    def attach(self, token: str, node: _Node) -> None:
        if token == SINGLE_WILDCARD:
            self.pwc = node
        elif token == FULL_WILDCARD:
            self.fwc = node
        else:
            self.nodes[token] = node

    def prune(self, node: _Node, token: str) -> None:
        if node is self.fwc:
            self.fwc = None
        elif node is self.pwc:
            self.pwc = None
        else:
            self.nodes.pop(token, None)

    def num_nodes(self) -> int:
        return len(self.nodes) + (self.pwc is not None) + (self.fwc is not None)


def _check_subject(tokens: list[str]) -> None:
    seen_full = False
    for token in tokens:
        if not token or seen_full:
            raise InvalidSubjectError(f"sublist: invalid subject: {'.'.join(tokens)}")
        seen_full = token == FULL_WILDCARD


class Match:
    """Tree of subscriptions that finds every subscription matching a subject."""

    def __init__(self) -> None:
        self._root = _Level()
        self._count = 0
        self.inserts = 0
        self.removes = 0
        self._matches = 0
        self._match_lock = threading.Lock()

    @property
    def matches(self) -> int:
        return self._matches

    def __len__(self) -> int:
        return self._count

    def insert(self, sub: Subscription) -> None:
        """Register ``sub`` under its token list."""
        if not sub.tokens:
            raise InvalidSubjectError("sublist: invalid subject: empty")
        _check_subject(sub.tokens)
        level = self._root
        node: _Node | None = None
        for token in sub.tokens:
            node = level.child(token)
            if node is None:
                node = _Node()
                level.attach(token, node)
            if node.next is None:
                node.next = _Level()
            level = node.next
        assert node is not None
        node.subs[sub] = None
        self._count += 1
        self.inserts += 1
        log.debug("inserted subscription %s", sub.subject)

    def match(self, tokens: list[str]) -> list[Subscription]:
        """Return the subscriptions whose subject matches ``tokens``."""
        with self._match_lock:
            self._matches += 1
        results: list[Subscription] = []
        self._match_level(self._root, list(tokens), results)
        return results

    def _match_level(self, level: _Level | None, tokens: list[str], results: list[Subscription]) -> None:
        pwc: _Node | None = None
        node: _Node | None = None
        for i, token in enumerate(tokens):
            if level is None:
                return
            if level.fwc is not None:
                results.extend(level.fwc.subs)
            pwc = level.pwc
            if pwc is not None:
                self._match_level(pwc.next, tokens[i + 1:], results)
            node = level.nodes.get(token)
            level = node.next if node is not None else None
        if node is not None:
            results.extend(node.subs)
        if pwc is not None:
            results.extend(pwc.subs)

    def remove(self, sub: Subscription) -> None:
        """Unregister ``sub`` and prune the branches it leaves empty."""
        level: _Level | None = self._root
        node: _Node | None = None
        path: list[tuple[_Level, _Node, str]] = []
        seen_full = False
        for token in sub.tokens:
            if not token or seen_full:
                raise InvalidSubjectError(f"sublist: invalid subject: {sub.subject}")
            if level is None:
                raise SubscriptionNotFoundError("sublist: no matches found")
            seen_full = token == FULL_WILDCARD
            node = level.child(token)
            if node is not None:
                path.append((level, node, token))
                level = node.next
            else:
                level = None
        if node is None or sub not in node.subs:
            raise SubscriptionNotFoundError("sublist: no matches found")
        del node.subs[sub]
        self._count -= 1
        self.removes += 1
        for parent, child, token in reversed(path):
            if child.is_empty():
                parent.prune(child, token)
        log.debug("removed subscription %s", sub.subject)