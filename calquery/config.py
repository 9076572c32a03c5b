# Calquery
# Copyright (C) 2018-2025 Jelmer Vernooĳ <jelmer@jelmer.uk>, et al.
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

"""Query configuration file.

Example::

    [query]
    timezone = Europe/London
    collation = i;unicode-casemap
    max-depth = 8
    min-date = 19000201T000000Z
    max-date = 30000201T000000Z
"""

import configparser
from datetime import datetime
from zoneinfo import ZoneInfo

from icalendar.prop import vDDDTypes

from .caldav import DEFAULT_MAX_DEPTH
from .collation import DEFAULT_COLLATION, get_collation
from .icalendar import as_tz_aware_ts
from .validator import MAX_DATE, MIN_DATE

FILENAME = ".calquery"

SECTION = "query"


class QueryConfig:
    """Settings for evaluating calendar queries."""

    def __init__(self, cp=None):
        if cp is None:
            cp = configparser.ConfigParser()
        self._configparser = cp

    @classmethod
    def from_file(cls, f):
        cp = configparser.ConfigParser()
        cp.read_file(f)
        return cls(cp)

    @classmethod
    def from_path(cls, path):
        with open(path, encoding="utf-8") as f:
            return cls.from_file(f)

    def _get(self, name):
        try:
            return self._configparser[SECTION][name]
        except KeyError:
            return None

    def get_timezone(self) -> ZoneInfo:
        return ZoneInfo(self._get("timezone") or "UTC")

    def get_collation(self) -> str:
        collation = self._get("collation") or DEFAULT_COLLATION
        # Raises UnknownCollation for typos in the configuration.
        get_collation(collation)
        return collation

    def get_max_depth(self) -> int:
        value = self._get("max-depth")
        if value is None:
            return DEFAULT_MAX_DEPTH
        depth = int(value)
        if depth < 1:
            raise ValueError(f"max-depth must be positive, got {depth}")
        return depth

    def _get_date(self, name, default) -> datetime:
        value = self._get(name)
        if value is None:
            return default
        dt = vDDDTypes.from_ical(value)
        if not isinstance(dt, datetime):
            raise ValueError(f"{name} must be a date-time, got {value!r}")
        return as_tz_aware_ts(dt, "UTC")

    def get_min_date(self) -> datetime:
        return self._get_date("min-date", MIN_DATE)

    def get_max_date(self) -> datetime:
        return self._get_date("max-date", MAX_DATE)
