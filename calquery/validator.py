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

"""Calendar-query filter validation.

Decides whether a calendar object matches a CALDAV:filter, following
https://tools.ietf.org/html/rfc4791, section 9.7.
"""

import collections
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Optional

from . import collation as _mod_collation
from .filter import CompFilter, Filter, ParamFilter, PropFilter, TextMatch, TimeRange
from .tree import Node, ValueNode

logger = logging.getLogger(__name__)

# Used when a CALDAV:time-range leaves out its start or end.
MIN_DATE = datetime(1900, 2, 1, tzinfo=timezone.utc)
MAX_DATE = datetime(3000, 2, 1, tzinfo=timezone.utc)

# Components whose time-range semantics are owned by the calendar model.
RECURRING_COMPONENTS = ("VEVENT", "VTODO", "VJOURNAL")

# Properties that carry a single date or date-time.
DATE_PROPERTIES = (
    "COMPLETED",
    "CREATED",
    "DTEND",
    "DTSTAMP",
    "DTSTART",
    "DUE",
    "LAST-MODIFIED",
)

TextMatcherFunction = Callable[[str, str, str, Optional[str]], bool]


class BadRequestError(Exception):
    """Base class for bad request errors."""

    def __init__(self, message) -> None:
        super().__init__(message)
        self.message = message


class InvalidFilter(BadRequestError):
    """The filter can not be applied as specified."""


class UnsupportedFilter(NotImplementedError):
    """The filter uses a feature that is not implemented."""

    def __init__(self, message) -> None:
        super().__init__(message)
        self.message = message


def nonfatal_bad_request(message, strict=False):
    if strict:
        raise BadRequestError(message)
    logger.debug("Bad request: %s", message)


PresenceCheck = collections.namedtuple("PresenceCheck", ["stop", "result", "children"])


def check_presence(parent: Node, filter_node) -> PresenceCheck:
    """Check whether the node named by a filter is present.

    Args:
      parent: Node to look in
      filter_node: CompFilter, PropFilter or ParamFilter
    Returns: PresenceCheck; when ``stop`` is set, ``result`` is the
      verdict for the filter, otherwise evaluation continues on
      ``children``.
    """
    exists = parent.has_named_child(filter_node.name)
    if exists:
        children = list(parent.select_named_children(filter_node.name))
    else:
        children = []
    return PresenceCheck(
        stop=not (exists and not filter_node.is_not_defined),
        result=exists != filter_node.is_not_defined,
        children=children,
    )


class CalendarQueryValidator:
    """Validate calendar objects against calendar-query filters.

    Args:
      min_date: Start used for time ranges without a start
      max_date: End used for time ranges without an end
      text_matcher: Callable taking (value, pattern, match_type,
        collation) and returning a bool
    """

    def __init__(
        self,
        min_date: datetime = MIN_DATE,
        max_date: datetime = MAX_DATE,
        text_matcher: Optional[TextMatcherFunction] = None,
    ) -> None:
        self.min_date = min_date
        self.max_date = max_date
        if text_matcher is None:
            text_matcher = _mod_collation.text_match
        self.text_matcher = text_matcher

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.min_date!r}, {self.max_date!r})"

    def validate(self, vobject: Node, filter: Optional[Filter]) -> bool:
        """Check whether a calendar object matches a filter.

        Args:
          vobject: Root of the calendar object (usually VCALENDAR)
          filter: Filter to apply, or None
        Raises:
          InvalidFilter: If a time-range is applied to an unsupported node
          UnsupportedFilter: If a time-range is applied to VFREEBUSY
        Returns: bool
        """
        if filter is None:
            return True
        if vobject.name != filter.name:
            return False
        return self._validate_filter_set(
            vobject, filter.comp_filters, self.validate_comp_filter
        ) and self._validate_filter_set(
            vobject, filter.prop_filters, self.validate_prop_filter
        )

    def _validate_filter_set(
        self, node: Node, filters: Iterable, validator: Callable[[Node, object], bool]
    ) -> bool:
        for child_filter in filters:
            if not validator(node, child_filter):
                return False
        return True

    def validate_comp_filter(self, component: Node, comp_filter: CompFilter) -> bool:
        # From https://tools.ietf.org/html/rfc4791, 9.7.1:
        # A CALDAV:comp-filter is said to match if:
        #
        # 1. The CALDAV:comp-filter XML element is empty and the calendar
        # object or calendar component type specified by the "name"
        # attribute exists in the current scope;
        #
        # 2. The CALDAV:comp-filter XML element contains a
        # CALDAV:is-not-defined XML element and the calendar object or
        # calendar component type specified by the "name" attribute does
        # not exist in the current scope;
        presence = check_presence(component, comp_filter)
        if presence.stop:
            logger.debug(
                "comp-filter %s short-circuits: %r", comp_filter.name, presence.result
            )
            return presence.result

        # 3. The CALDAV:comp-filter XML element contains a CALDAV:time-range
        # XML element and at least one recurrence instance in the targeted
        # calendar component is scheduled to overlap the specified time range
        if comp_filter.time_range is not None and not any(
            self.validate_time_range(child, comp_filter.time_range)
            for child in presence.children
        ):
            return False

        # ... and all specified CALDAV:prop-filter and CALDAV:comp-filter child
        # XML elements also match the targeted calendar component;
        node = presence.children[0]
        return self._validate_filter_set(
            node, comp_filter.comp_filters, self.validate_comp_filter
        ) and self._validate_filter_set(
            node, comp_filter.prop_filters, self.validate_prop_filter
        )

    def validate_prop_filter(self, component: Node, prop_filter: PropFilter) -> bool:
        # From https://tools.ietf.org/html/rfc4791, 9.7.2:
        # The CALDAV:prop-filter XML element contains a CALDAV:is-not-defined
        # XML element and no property of the type specified by the "name"
        # attribute exists in the enclosing calendar component;
        presence = check_presence(component, prop_filter)
        if presence.stop:
            logger.debug(
                "prop-filter %s short-circuits: %r", prop_filter.name, presence.result
            )
            return presence.result

        return any(
            self._validate_property(prop, prop_filter) for prop in presence.children
        )

    def _validate_property(self, prop: Node, prop_filter: PropFilter) -> bool:
        if not self.validate_time_range(prop, prop_filter.time_range):
            return False
        if not self.validate_text_match(prop, prop_filter.text_match):
            return False
        return self._validate_filter_set(
            prop, prop_filter.param_filters, self.validate_param_filter
        )

    def validate_param_filter(self, prop: Node, param_filter: ParamFilter) -> bool:
        presence = check_presence(prop, param_filter)
        if presence.stop:
            return presence.result
        return self.validate_text_match(presence.children[0], param_filter.text_match)

    def validate_text_match(self, node, text_match: Optional[TextMatch]) -> bool:
        """Check a value (or value-holding node) against a text-match.

        Returns: the raw match result, inverted if negate-condition is set
        """
        if text_match is None:
            return True
        if isinstance(node, ValueNode):
            node = node.get_value()
        elif isinstance(node, Node):
            # Components carry no text value.
            logger.debug("text-match on %s component never matches", node.name)
            return False
        matched = self.text_matcher(
            node, text_match.value, text_match.match_type, text_match.collation
        )
        return text_match.negate_condition != matched

    def validate_time_range(self, node: Node, time_range: Optional[TimeRange]) -> bool:
        """Check whether a node falls within a time range.

        This follows the rules in https://tools.ietf.org/html/rfc4791,
        section 9.9; the per-component overlap rules are left to the
        calendar model.

        Raises:
          UnsupportedFilter: for VFREEBUSY components
          InvalidFilter: for nodes that can not carry a time range
        """
        if time_range is None:
            return True

        start = time_range.start
        if start is None:
            start = self.min_date
        end = time_range.end
        if end is None:
            end = self.max_date

        if node.name in RECURRING_COMPONENTS:
            return node.is_in_time_range(start, end)
        elif node.name == "VALARM":
            # Alarms are never considered to be in a time range.
            return False
        elif node.name == "VFREEBUSY":
            raise UnsupportedFilter(
                f"time-range filters are currently not supported on "
                f"{node.name} components"
            )
        elif node.name in DATE_PROPERTIES:
            try:
                value = node.get_datetime()
            except ValueError as exc:
                logger.warning(
                    "Unable to interpret %s as a date-time: %s", node.name, exc
                )
                return False
            return node.tzify(start) <= value <= node.tzify(end)
        else:
            raise InvalidFilter(
                f"You cannot create a time-range filter on a {node.name} component"
            )


_default_validator = CalendarQueryValidator()


def validate(vobject: Node, filter: Optional[Filter]) -> bool:
    """Check whether a calendar object matches a filter.

    Uses the default date bounds and the built-in collations.
    """
    return _default_validator.validate(vobject, filter)
