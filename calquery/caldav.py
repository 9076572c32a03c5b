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

"""Parsing of CalDAV calendar-query filters.

https://tools.ietf.org/html/rfc4791
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import ParseError
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from defusedxml.ElementTree import fromstring as xmlparse
from icalendar.cal import Calendar as ICalendar
from icalendar.prop import vDDDTypes

from . import collation as _mod_collation
from .filter import CompFilter, Filter
from .icalendar import as_tz_aware_ts
from .validator import InvalidFilter, nonfatal_bad_request

NAMESPACE = "urn:ietf:params:xml:ns:caldav"

CALENDAR_QUERY_TAG = "{%s}calendar-query" % NAMESPACE
FILTER_TAG = "{%s}filter" % NAMESPACE
COMP_FILTER_TAG = "{%s}comp-filter" % NAMESPACE
PROP_FILTER_TAG = "{%s}prop-filter" % NAMESPACE
PARAM_FILTER_TAG = "{%s}param-filter" % NAMESPACE
IS_NOT_DEFINED_TAG = "{%s}is-not-defined" % NAMESPACE
TEXT_MATCH_TAG = "{%s}text-match" % NAMESPACE
TIME_RANGE_TAG = "{%s}time-range" % NAMESPACE
TIMEZONE_TAG = "{%s}timezone" % NAMESPACE

DEFAULT_MAX_DEPTH = 16


def _check_depth(el, depth, max_depth):
    if depth > max_depth:
        raise InvalidFilter(
            f"{el.tag} nested more than {max_depth} levels deep"
        )


def _get_name(el) -> str:
    name = el.get("name")
    if not name:
        raise InvalidFilter(f"missing name attribute on {el.tag}")
    return name.upper()


def parse_text_match(el, cls, default_collation=None):
    collation = el.get("collation", default_collation)
    negate_condition = el.get("negate-condition", "no")
    match_type = el.get("match-type", _mod_collation.DEFAULT_MATCH_TYPE)

    if negate_condition not in ("yes", "no"):
        raise InvalidFilter(f"invalid negate-condition {negate_condition!r}")
    if match_type not in _mod_collation.MATCH_TYPES:
        raise InvalidFilter(f"unsupported match-type {match_type!r}")
    if collation is not None:
        try:
            _mod_collation.get_collation(collation)
        except _mod_collation.UnknownCollation as exc:
            raise InvalidFilter(str(exc)) from exc

    return cls(
        el.text or "",
        match_type=match_type,
        negate_condition=(negate_condition == "yes"),
        collation=collation,
    )


def _parse_datetime(value: str) -> datetime:
    try:
        dt = vDDDTypes.from_ical(value)
    except ValueError as exc:
        raise InvalidFilter(f"invalid date-time {value!r} in time-range") from exc
    if not isinstance(dt, datetime):
        raise InvalidFilter(f"time-range bound {value!r} is not a date-time")
    return as_tz_aware_ts(dt, timezone.utc)


def _parse_time_range(el):
    start = el.get("start")
    end = el.get("end")
    # Either start OR end OR both need to be specified.
    # https://tools.ietf.org/html/rfc4791, section 9.9
    if start is None and end is None:
        raise InvalidFilter("time-range needs at least a start or an end")
    if start is not None:
        start = _parse_datetime(start)
    if end is not None:
        end = _parse_datetime(end)
    if start is not None and end is not None and not end > start:
        raise InvalidFilter("time-range end must be after its start")
    return (start, end)


def parse_time_range(el, cls):
    (start, end) = _parse_time_range(el)
    return cls(start, end)


def parse_param_filter(el, cls, default_collation=None):
    param_filter = cls(name=_get_name(el))

    for subel in el:
        if subel.tag == IS_NOT_DEFINED_TAG:
            param_filter.is_not_defined = True
        elif subel.tag == TEXT_MATCH_TAG:
            parse_text_match(subel, param_filter.filter_text_match, default_collation)
        else:
            raise InvalidFilter(f"unknown tag {subel.tag!r} in param-filter")
    return param_filter


def parse_prop_filter(el, cls, default_collation=None):
    # From https://tools.ietf.org/html/rfc4791, 9.7.2:
    # A CALDAV:prop-filter is said to match if:

    prop_filter = cls(name=_get_name(el))

    for subel in el:
        if subel.tag == IS_NOT_DEFINED_TAG:
            prop_filter.is_not_defined = True
        elif subel.tag == TIME_RANGE_TAG:
            parse_time_range(subel, prop_filter.filter_time_range)
        elif subel.tag == TEXT_MATCH_TAG:
            parse_text_match(subel, prop_filter.filter_text_match, default_collation)
        elif subel.tag == PARAM_FILTER_TAG:
            parse_param_filter(subel, prop_filter.filter_parameter, default_collation)
        else:
            raise InvalidFilter(f"unknown subelement {subel.tag!r} in prop-filter")
    return prop_filter


def parse_comp_filter(
    el: ET.Element,
    cls,
    default_collation=None,
    depth: int = 1,
    max_depth: int = DEFAULT_MAX_DEPTH,
):
    """Parse a comp-filter element into a filter node."""
    _check_depth(el, depth, max_depth)

    # From https://tools.ietf.org/html/rfc4791, 9.7.1:
    # A CALDAV:comp-filter is said to match if:

    comp_filter = cls(name=_get_name(el))

    for subel in el:
        if subel.tag == IS_NOT_DEFINED_TAG:
            comp_filter.is_not_defined = True
        elif subel.tag == COMP_FILTER_TAG:
            parse_comp_filter(
                subel,
                comp_filter.filter_subcomponent,
                default_collation,
                depth=depth + 1,
                max_depth=max_depth,
            )
        elif subel.tag == PROP_FILTER_TAG:
            _check_depth(subel, depth + 1, max_depth)
            parse_prop_filter(subel, comp_filter.filter_property, default_collation)
        elif subel.tag == TIME_RANGE_TAG:
            parse_time_range(subel, comp_filter.filter_time_range)
        else:
            raise InvalidFilter(f"unknown filter tag {subel.tag!r}")
    return comp_filter


def parse_filter(
    filter_el: ET.Element,
    default_collation: Optional[str] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Filter:
    """Parse a CALDAV:filter element.

    The filter contains exactly one comp-filter, which names the calendar
    object itself.

    Args:
      filter_el: The CALDAV:filter element
      default_collation: Collation for text-match elements without one
      max_depth: Maximum nesting of comp-filters and prop-filters
    Raises:
      InvalidFilter: If the filter is malformed
    Returns: Filter
    """
    comp_filters = [subel for subel in filter_el if subel.tag == COMP_FILTER_TAG]
    for subel in filter_el:
        if subel.tag != COMP_FILTER_TAG:
            raise InvalidFilter(f"unknown filter tag {subel.tag!r}")
    if len(comp_filters) != 1:
        raise InvalidFilter(
            f"filter must contain exactly one comp-filter, got {len(comp_filters)}"
        )
    root = parse_comp_filter(
        comp_filters[0],
        CompFilter,
        default_collation,
        max_depth=max_depth,
    )
    if root.is_not_defined:
        raise InvalidFilter("is-not-defined is not allowed on the top comp-filter")
    if root.time_range is not None:
        raise InvalidFilter("time-range is not allowed on the top comp-filter")
    return Filter(root.name, root.comp_filters, root.prop_filters)


def extract_tzid(cal):
    for component in cal.subcomponents:
        if component.name == "VTIMEZONE":
            return str(component["TZID"])
    raise KeyError("TZID")


def get_timezone_from_text(tztext: str) -> ZoneInfo:
    """Find the timezone described by a CALDAV:timezone element.

    Raises:
      KeyError: If no VTIMEZONE with a TZID is present
      ZoneInfoNotFoundError: If the TZID is not a known timezone
    """
    tzid = extract_tzid(ICalendar.from_ical(tztext))
    return ZoneInfo(tzid)


def parse_calendar_query(
    body: bytes,
    strict: bool = False,
    default_collation: Optional[str] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> tuple[Optional[Filter], Optional[ZoneInfo]]:
    """Parse a CALDAV:calendar-query REPORT body.

    Args:
      body: XML document
      strict: Whether to reject unknown elements
      default_collation: Collation for text-match elements without one
      max_depth: Maximum nesting of filter elements
    Raises:
      InvalidFilter: If the body or the filter is malformed
    Returns: tuple with filter (None if absent) and timezone (None if absent)
    """
    try:
        root = xmlparse(body)
    except (ParseError, ValueError) as exc:
        raise InvalidFilter(f"unable to parse calendar-query: {exc}") from exc
    if root.tag == FILTER_TAG:
        return (parse_filter(root, default_collation, max_depth), None)
    if root.tag != CALENDAR_QUERY_TAG:
        raise InvalidFilter(f"expected calendar-query, got {root.tag!r}")
    filter = None
    tz = None
    for el in root:
        if el.tag in ("{DAV:}prop", "{DAV:}propname", "{DAV:}allprop"):
            pass
        elif el.tag == FILTER_TAG:
            filter = parse_filter(el, default_collation, max_depth)
        elif el.tag == TIMEZONE_TAG:
            try:
                tz = get_timezone_from_text(el.text or "")
            except (KeyError, ValueError, ZoneInfoNotFoundError) as exc:
                nonfatal_bad_request(f"Unable to use timezone: {exc}", strict)
        else:
            nonfatal_bad_request(
                f"Unknown tag {el.tag} in report {CALENDAR_QUERY_TAG}", strict
            )
    if filter is None:
        logging.debug("calendar-query without filter; matching everything")
    return (filter, tz)
