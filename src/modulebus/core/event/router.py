"""
EventRouter: pattern compilation and matching for the modulebus EventBus.

Purpose
-------
Turns a subscription pattern into a matcher once, at subscribe time, so that
delivery only ever calls ``matcher.matches(topic)``.

Supported Patterns
------------------
- Exact:     "order.created"  -> ``ExactMatch``, only "order.created"
- Universal: "*"              -> ``UniversalMatch``, every topic
- Segment:   "order.*"        -> ``SegmentMatch``, "order.created", "order.a.b"
- Segment:   "*.created"      -> ``SegmentMatch``, "order.created", ...
- Segment:   "a.*.c"          -> ``SegmentMatch``, "a.b.c", "a.x.y.c"

Notes
-----
- Each ``*`` matches any run of characters, dots included.
- Literal parts are regex-escaped, so "a+b.*" only matches a literal "a+b.".
- The compiled expression is anchored at both ends (``re.fullmatch``).
- Matching is case-sensitive.

Dependencies
------------
- re (Python stdlib)
- modulebus.core.event.types (matcher variants)
"""

from __future__ import annotations

import re

from modulebus.core.event.types import (
    WILDCARD,
    ExactMatch,
    Matcher,
    SegmentMatch,
    UniversalMatch,
)


class EventRouter:
    """
    Compiles patterns into matchers and answers one-off match queries.

    Stateless; a single instance can be shared.

    Examples
    --------
    >>> router = EventRouter()
    >>> router.matches("order.created", "order.*")
    True
    >>> router.matches("user.created", "order.*")
    False
    >>> router.compile("*")
    UniversalMatch()
    """

    @staticmethod
    def is_wildcard(pattern: str) -> bool:
        return WILDCARD in pattern

    def compile(self, pattern: str) -> Matcher:
        """
        Build the matcher for a pattern.

        Parameters
        ----------
        pattern:
            Non-empty subscription pattern.

        Returns
        -------
        Matcher:
            ``UniversalMatch`` for "*", ``ExactMatch`` when the pattern has no
            wildcard, otherwise a ``SegmentMatch`` holding the compiled regex.
        """
        if pattern == WILDCARD:
            return UniversalMatch()

        if not self.is_wildcard(pattern):
            return ExactMatch(pattern)

        expression = ".*".join(re.escape(part) for part in pattern.split(WILDCARD))
        return SegmentMatch(re.compile(expression))

    def matches(self, event_name: str, pattern: str) -> bool:
        """
        Check a topic against a pattern without keeping the matcher.

        Examples
        --------
        >>> router = EventRouter()
        >>> router.matches("a.b.c", "a.*.c")
        True
        >>> router.matches("a.b", "*")
        True
        """
        return self.compile(pattern).matches(event_name)


__all__ = ["EventRouter"]
