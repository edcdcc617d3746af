"""
Shape heuristics for parameter detection.

A shape marks a single-occurrence value as worth parameterizing. Matchers
are evaluated in a fixed order and the first match wins:

1. ipv4    - dotted quad
2. uuid    - 8-4-4-4-12 hex groups
3. domain  - dot separated labels ending in an alphabetic TLD
4. port    - integer in [1, 65535] whose key mentions "port"

IPv4 comes before domain so "10.0.0.1" is never treated as a host name.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Pattern

from apimacro.core.models import Validation

IPV4_PATTERN = r"^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
DOMAIN_PATTERN = r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?\.)+[a-zA-Z]{2,63}$"

PORT_MIN = 1
PORT_MAX = 65535

_INTEGER = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ShapeMatch:
    """What a matcher concluded about a value."""
    shape: str
    type: str
    validation: Validation
    description: str
    suffix: str  # appended to the derived parameter name
    hints: tuple = ()  # name fragments that make the suffix redundant


@dataclass
class ShapeMatcher:
    """
    A named test over (value, context).

    `test` receives the raw value and the key it was found under.
    """
    name: str
    test: Callable[[Any, str], bool]
    build: Callable[[], ShapeMatch]

    def match(self, value: Any, context: str) -> Optional[ShapeMatch]:
        if self.test(value, context):
            return self.build()
        return None


def _regex_test(pattern: Pattern) -> Callable[[Any, str], bool]:
    def test(value: Any, context: str) -> bool:
        return isinstance(value, str) and bool(pattern.match(value))
    return test


def _port_test(value: Any, context: str) -> bool:
    if "port" not in context.lower():
        return False
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and _INTEGER.match(value):
        number = int(value)
    else:
        return False
    return PORT_MIN <= number <= PORT_MAX


class ShapeRegistry:
    """
    Ordered list of shape matchers.

    Extend with `register`; new matchers are appended after the defaults
    unless a position is given.
    """

    def __init__(self):
        self.matchers: List[ShapeMatcher] = [
            ShapeMatcher(
                "ipv4",
                _regex_test(re.compile(IPV4_PATTERN)),
                lambda: ShapeMatch(
                    shape="ipv4",
                    type="string",
                    validation=Validation(pattern=IPV4_PATTERN),
                    description="IP address",
                    suffix="Address",
                    hints=("address", "ip"),
                ),
            ),
            ShapeMatcher(
                "uuid",
                _regex_test(re.compile(UUID_PATTERN)),
                lambda: ShapeMatch(
                    shape="uuid",
                    type="string",
                    validation=Validation(pattern=UUID_PATTERN),
                    description="UUID",
                    suffix="Id",
                    hints=("id", "uuid"),
                ),
            ),
            ShapeMatcher(
                "domain",
                _regex_test(re.compile(DOMAIN_PATTERN)),
                lambda: ShapeMatch(
                    shape="domain",
                    type="string",
                    validation=Validation(pattern=DOMAIN_PATTERN),
                    description="Domain name",
                    suffix="",
                ),
            ),
            ShapeMatcher(
                "port",
                _port_test,
                lambda: ShapeMatch(
                    shape="port",
                    type="number",
                    validation=Validation(minimum=PORT_MIN, maximum=PORT_MAX),
                    description="Port number",
                    suffix="Port",
                    hints=("port",),
                ),
            ),
        ]

    def register(self, matcher: ShapeMatcher, position: Optional[int] = None) -> None:
        if position is None:
            self.matchers.append(matcher)
        else:
            self.matchers.insert(position, matcher)

    def match(self, value: Any, context: str = "") -> Optional[ShapeMatch]:
        """
        Return the first shape the value matches.

        Args:
            value: Raw payload value
            context: Key the value was found under

        Returns:
            ShapeMatch or None if no matcher accepts the value
        """
        for matcher in self.matchers:
            result = matcher.match(value, context)
            if result:
                return result
        return None


default_registry = ShapeRegistry()
