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

"""Tests for calquery.caldav."""

import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from defusedxml.ElementTree import fromstring as xmlparse

from calquery.caldav import parse_calendar_query, parse_filter
from calquery.validator import BadRequestError, InvalidFilter

NS = 'xmlns:C="urn:ietf:params:xml:ns:caldav" xmlns:D="DAV:"'


def filter_el(body):
    return xmlparse(f"<C:filter {NS}>{body}</C:filter>")


class ParseFilterTests(unittest.TestCase):
    def test_simple(self):
        f = parse_filter(
            filter_el(
                '<C:comp-filter name="VCALENDAR">'
                '<C:comp-filter name="VEVENT"/>'
                "</C:comp-filter>"
            )
        )
        self.assertEqual("VCALENDAR", f.name)
        self.assertEqual(["VEVENT"], [c.name for c in f.comp_filters])
        self.assertEqual([], f.prop_filters)
        self.assertFalse(f.comp_filters[0].is_not_defined)
        self.assertIsNone(f.comp_filters[0].time_range)

    def test_prop_filter(self):
        f = parse_filter(
            filter_el(
                '<C:comp-filter name="VCALENDAR">'
                '<C:comp-filter name="VTODO">'
                '<C:prop-filter name="COMPLETED"><C:is-not-defined/></C:prop-filter>'
                '<C:prop-filter name="SUMMARY">'
                '<C:text-match negate-condition="yes" '
                'collation="i;octet">Lunch</C:text-match>'
                "</C:prop-filter>"
                "</C:comp-filter>"
                "</C:comp-filter>"
            )
        )
        [todo] = f.comp_filters
        [completed, summary] = todo.prop_filters
        self.assertEqual("COMPLETED", completed.name)
        self.assertTrue(completed.is_not_defined)
        self.assertEqual("SUMMARY", summary.name)
        self.assertEqual("Lunch", summary.text_match.value)
        self.assertTrue(summary.text_match.negate_condition)
        self.assertEqual("i;octet", summary.text_match.collation)
        self.assertEqual("contains", summary.text_match.match_type)

    def test_param_filter(self):
        f = parse_filter(
            filter_el(
                '<C:comp-filter name="VCALENDAR">'
                '<C:comp-filter name="VEVENT">'
                '<C:prop-filter name="ATTENDEE">'
                '<C:text-match match-type="ends-with">@example.com</C:text-match>'
                '<C:param-filter name="PARTSTAT">'
                "<C:text-match>NEEDS-ACTION</C:text-match>"
                "</C:param-filter>"
                '<C:param-filter name="ROLE"><C:is-not-defined/></C:param-filter>'
                "</C:prop-filter>"
                "</C:comp-filter>"
                "</C:comp-filter>"
            )
        )
        [attendee] = f.comp_filters[0].prop_filters
        self.assertEqual("ends-with", attendee.text_match.match_type)
        [partstat, role] = attendee.param_filters
        self.assertEqual("NEEDS-ACTION", partstat.text_match.value)
        self.assertIsNone(partstat.text_match.collation)
        self.assertTrue(role.is_not_defined)
        self.assertIsNone(role.text_match)

    def test_default_collation(self):
        f = parse_filter(
            filter_el(
                '<C:comp-filter name="VCALENDAR">'
                '<C:prop-filter name="PRODID">'
                "<C:text-match>Example</C:text-match>"
                "</C:prop-filter>"
                "</C:comp-filter>"
            ),
            default_collation="i;unicode-casemap",
        )
        self.assertEqual("i;unicode-casemap", f.prop_filters[0].text_match.collation)

    def test_time_range(self):
        f = parse_filter(
            filter_el(
                '<C:comp-filter name="VCALENDAR">'
                '<C:comp-filter name="VEVENT">'
                '<C:time-range start="20060104T000000Z" end="20060105T000000Z"/>'
                "</C:comp-filter>"
                "</C:comp-filter>"
            )
        )
        tr = f.comp_filters[0].time_range
        self.assertEqual(datetime(2006, 1, 4, tzinfo=timezone.utc), tr.start)
        self.assertEqual(datetime(2006, 1, 5, tzinfo=timezone.utc), tr.end)

    def test_time_range_open_ended(self):
        f = parse_filter(
            filter_el(
                '<C:comp-filter name="VCALENDAR">'
                '<C:comp-filter name="VTODO">'
                '<C:prop-filter name="DUE">'
                '<C:time-range end="20060105T000000Z"/>'
                "</C:prop-filter>"
                "</C:comp-filter>"
                "</C:comp-filter>"
            )
        )
        tr = f.comp_filters[0].prop_filters[0].time_range
        self.assertIsNone(tr.start)
        self.assertEqual(datetime(2006, 1, 5, tzinfo=timezone.utc), tr.end)

    def assertInvalid(self, body, **kwargs):
        self.assertRaises(InvalidFilter, parse_filter, filter_el(body), **kwargs)

    def test_time_range_invalid(self):
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><C:comp-filter name="VEVENT">'
            "<C:time-range/></C:comp-filter></C:comp-filter>"
        )
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><C:comp-filter name="VEVENT">'
            '<C:time-range start="20060105T000000Z" end="20060104T000000Z"/>'
            "</C:comp-filter></C:comp-filter>"
        )
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><C:comp-filter name="VEVENT">'
            '<C:time-range start="yesterday"/>'
            "</C:comp-filter></C:comp-filter>"
        )

    def test_text_match_invalid(self):
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><C:prop-filter name="PRODID">'
            '<C:text-match collation="i;klingon">x</C:text-match>'
            "</C:prop-filter></C:comp-filter>"
        )
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><C:prop-filter name="PRODID">'
            '<C:text-match match-type="regex">x</C:text-match>'
            "</C:prop-filter></C:comp-filter>"
        )
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><C:prop-filter name="PRODID">'
            '<C:text-match negate-condition="maybe">x</C:text-match>'
            "</C:prop-filter></C:comp-filter>"
        )

    def test_structure_invalid(self):
        self.assertInvalid("")
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"/><C:comp-filter name="VCARD"/>'
        )
        self.assertInvalid('<C:comp-filter name="VCALENDAR"><C:is-not-defined/>'
                           "</C:comp-filter>")
        self.assertInvalid("<C:comp-filter/>")
        self.assertInvalid(
            '<C:comp-filter name="VCALENDAR"><D:unknown/></C:comp-filter>'
        )
        self.assertInvalid('<C:prop-filter name="VERSION"/>')

    def test_max_depth(self):
        body = (
            '<C:comp-filter name="VCALENDAR">'
            '<C:comp-filter name="VEVENT">'
            '<C:comp-filter name="VALARM"/>'
            "</C:comp-filter>"
            "</C:comp-filter>"
        )
        self.assertInvalid(body, max_depth=2)
        f = parse_filter(filter_el(body), max_depth=3)
        self.assertEqual("VALARM", f.comp_filters[0].comp_filters[0].name)


EXAMPLE_QUERY = b"""\
<?xml version="1.0" encoding="utf-8" ?>
<C:calendar-query xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:prop>
    <D:getetag/>
  </D:prop>
  <C:filter>
    <C:comp-filter name="VCALENDAR">
      <C:comp-filter name="VEVENT">
        <C:prop-filter name="SUMMARY">
          <C:text-match>Meeting</C:text-match>
        </C:prop-filter>
      </C:comp-filter>
    </C:comp-filter>
  </C:filter>
  <C:timezone>BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example Corp.//Example Client//EN
BEGIN:VTIMEZONE
TZID:Europe/Amsterdam
BEGIN:STANDARD
DTSTART:19701025T030000
TZOFFSETFROM:+0200
TZOFFSETTO:+0100
END:STANDARD
END:VTIMEZONE
END:VCALENDAR
</C:timezone>
</C:calendar-query>
"""


class ParseCalendarQueryTests(unittest.TestCase):
    def test_query(self):
        (f, tz) = parse_calendar_query(EXAMPLE_QUERY)
        self.assertEqual("VCALENDAR", f.name)
        self.assertEqual(
            "Meeting", f.comp_filters[0].prop_filters[0].text_match.value
        )
        self.assertEqual(ZoneInfo("Europe/Amsterdam"), tz)

    def test_bare_filter(self):
        (f, tz) = parse_calendar_query(
            f'<C:filter {NS}><C:comp-filter name="VCALENDAR"/></C:filter>'.encode()
        )
        self.assertEqual("VCALENDAR", f.name)
        self.assertIsNone(tz)

    def test_no_filter(self):
        (f, tz) = parse_calendar_query(
            f"<C:calendar-query {NS}><D:allprop/></C:calendar-query>".encode()
        )
        self.assertIsNone(f)
        self.assertIsNone(tz)

    def test_unknown_element(self):
        body = f"<C:calendar-query {NS}><D:bogus/></C:calendar-query>".encode()
        (f, tz) = parse_calendar_query(body)
        self.assertIsNone(f)
        self.assertRaises(BadRequestError, parse_calendar_query, body, strict=True)

    def test_unknown_timezone(self):
        body = (
            f"<C:calendar-query {NS}><C:timezone>BEGIN:VCALENDAR\n"
            "BEGIN:VTIMEZONE\nTZID:Mars/Olympus_Mons\nEND:VTIMEZONE\n"
            "END:VCALENDAR\n</C:timezone></C:calendar-query>"
        ).encode()
        (f, tz) = parse_calendar_query(body)
        self.assertIsNone(tz)
        self.assertRaises(BadRequestError, parse_calendar_query, body, strict=True)

    def test_not_xml(self):
        self.assertRaises(InvalidFilter, parse_calendar_query, b"<unclosed")

    def test_wrong_root(self):
        self.assertRaises(
            InvalidFilter,
            parse_calendar_query,
            b'<D:propfind xmlns:D="DAV:"/>',
        )
