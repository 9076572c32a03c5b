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

"""Running calendar queries over calendar files."""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .filter import Filter
from .icalendar import ICalendarFile, InvalidFileContents
from .validator import MAX_DATE, MIN_DATE, CalendarQueryValidator


class CalendarQuery:
    """A calendar-query filter bound to a default timezone.

    Args:
      filter: Parsed filter, or None to match everything
      default_timezone: Timezone for floating times and dates
    """

    def __init__(
        self,
        filter: Optional[Filter],
        default_timezone: Union[str, timezone, ZoneInfo] = timezone.utc,
        min_date: datetime = MIN_DATE,
        max_date: datetime = MAX_DATE,
    ) -> None:
        self.filter = filter
        self.default_timezone = default_timezone
        self.validator = CalendarQueryValidator(min_date=min_date, max_date=max_date)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.filter!r})"

    def check(self, name: str, file: ICalendarFile) -> bool:
        """Check whether a calendar file matches.

        Raises:
          InvalidFilter: If the filter can not be applied
          UnsupportedFilter: If the filter uses unsupported features
        """
        try:
            root = file.get_root(self.default_timezone)
        except InvalidFileContents as e:
            logging.warning(
                "calendar_query: Ignoring calendar object %s, unable to parse: %s",
                name,
                e.error,
            )
            return False
        return self.validator.validate(root, self.filter)

    def matching(
        self, files: Iterable[tuple[str, ICalendarFile]]
    ) -> Iterator[str]:
        """Yield the names of the files that match."""
        for name, file in files:
            if self.check(name, file):
                yield name
