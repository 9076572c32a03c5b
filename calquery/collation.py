# Calquery
# Copyright (C) 2016-2025 Jelmer Vernooĳ <jelmer@jelmer.uk>, et al.
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU General Public License
# as published by the Free Software Foundation; version 3
# of the License or (at your option) any later version of
# the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston,
# MA  02110-1301, USA.

"""Collations and text matching.

https://tools.ietf.org/html/rfc4790
"""

from collections.abc import Callable
from typing import Optional

DEFAULT_COLLATION = "i;ascii-casemap"
DEFAULT_MATCH_TYPE = "contains"

MATCH_TYPES = ("equals", "contains", "starts-with", "ends-with")


class UnknownCollation(Exception):
    def __init__(self, collation: str) -> None:
        super().__init__(f"Collation {collation!r} is not supported")
        self.collation = collation


class UnknownMatchType(Exception):
    def __init__(self, match_type: str) -> None:
        super().__init__(f"Match type {match_type!r} is not supported")
        self.match_type = match_type


def _match(a, b, k):
    if k == "equals":
        return a == b
    elif k == "contains":
        return b in a
    elif k == "starts-with":
        return a.startswith(b)
    elif k == "ends-with":
        return a.endswith(b)
    else:
        raise UnknownMatchType(k)


# Only ASCII letters are folded; everything else compares by code point.
_ASCII_UPPER = str.maketrans(
    "abcdefghijklmnopqrstuvwxyz", "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
)


collations: dict[str, Callable[[str, str, str], bool]] = {
    "i;ascii-casemap": lambda a, b, k: _match(
        a.translate(_ASCII_UPPER), b.translate(_ASCII_UPPER), k
    ),
    "i;octet": lambda a, b, k: _match(a, b, k),
    # TODO(jelmer): Follow all rules as specified in
    # https://datatracker.ietf.org/doc/html/rfc5051
    "i;unicode-casemap": lambda a, b, k: _match(a.casefold(), b.casefold(), k),
}


def get_collation(name: str) -> Callable[[str, str, str], bool]:
    """Get a collation by name.

    Args:
      name: Collation name
    Raises:
      UnknownCollation: If the collation is not supported
    """
    try:
        return collations[name]
    except KeyError as exc:
        raise UnknownCollation(name) from exc


def text_match(
    value: str,
    pattern: str,
    match_type: str = DEFAULT_MATCH_TYPE,
    collation: Optional[str] = None,
) -> bool:
    """Match a value against a text pattern.

    Args:
      value: Value to check
      pattern: Pattern to look for
      match_type: One of "equals", "contains", "starts-with", "ends-with"
      collation: Collation name (defaults to i;ascii-casemap)
    Raises:
      UnknownCollation: If the collation is not supported
      UnknownMatchType: If the match type is not supported
    Returns: whether value matches
    """
    if collation is None:
        collation = DEFAULT_COLLATION
    if match_type not in MATCH_TYPES:
        raise UnknownMatchType(match_type)
    return get_collation(collation)(value, pattern, match_type)
