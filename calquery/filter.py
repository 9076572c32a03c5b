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

"""Calendar-query filter trees.

https://tools.ietf.org/html/rfc4791, section 9.7
"""

from datetime import datetime
from typing import Optional

from .collation import DEFAULT_MATCH_TYPE


class TimeRange:
    """A CALDAV:time-range element; either bound may be unset."""

    def __init__(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> None:
        self.start = start
        self.end = end

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.start!r}, {self.end!r})"


class TextMatch:
    def __init__(
        self,
        value: str,
        match_type: str = DEFAULT_MATCH_TYPE,
        negate_condition: bool = False,
        collation: Optional[str] = None,
    ) -> None:
        assert isinstance(value, str)
        self.value = value
        self.match_type = match_type
        self.negate_condition = negate_condition
        self.collation = collation

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.value!r}, "
            f"match_type={self.match_type!r}, "
            f"negate_condition={self.negate_condition!r}, "
            f"collation={self.collation!r})"
        )


class ParamFilter:
    text_match: Optional[TextMatch]

    def __init__(
        self,
        name: str,
        is_not_defined: bool = False,
        text_match: Optional[TextMatch] = None,
    ) -> None:
        self.name = name
        self.is_not_defined = is_not_defined
        self.text_match = text_match

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.name!r}, "
            f"is_not_defined={self.is_not_defined!r}, "
            f"text_match={self.text_match!r})"
        )

    def filter_text_match(
        self,
        value: str,
        match_type: str = DEFAULT_MATCH_TYPE,
        negate_condition: bool = False,
        collation: Optional[str] = None,
    ) -> TextMatch:
        self.text_match = TextMatch(
            value,
            match_type=match_type,
            negate_condition=negate_condition,
            collation=collation,
        )
        return self.text_match


class PropFilter:
    time_range: Optional[TimeRange]
    text_match: Optional[TextMatch]

    def __init__(
        self,
        name: str,
        is_not_defined: bool = False,
        time_range: Optional[TimeRange] = None,
        text_match: Optional[TextMatch] = None,
        param_filters: Optional[list[ParamFilter]] = None,
    ) -> None:
        self.name = name
        self.is_not_defined = is_not_defined
        self.time_range = time_range
        self.text_match = text_match
        self.param_filters = param_filters or []

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.name!r}, "
            f"is_not_defined={self.is_not_defined!r}, "
            f"time_range={self.time_range!r}, "
            f"text_match={self.text_match!r}, "
            f"param_filters={self.param_filters!r})"
        )

    def filter_parameter(self, name: str, is_not_defined: bool = False) -> ParamFilter:
        ret = ParamFilter(name=name, is_not_defined=is_not_defined)
        self.param_filters.append(ret)
        return ret

    def filter_time_range(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> TimeRange:
        self.time_range = TimeRange(start, end)
        return self.time_range

    def filter_text_match(
        self,
        value: str,
        match_type: str = DEFAULT_MATCH_TYPE,
        negate_condition: bool = False,
        collation: Optional[str] = None,
    ) -> TextMatch:
        self.text_match = TextMatch(
            value,
            match_type=match_type,
            negate_condition=negate_condition,
            collation=collation,
        )
        return self.text_match


class ComponentScope:
    """Builders shared by filters that apply to a component."""

    comp_filters: list["CompFilter"]
    prop_filters: list[PropFilter]

    def filter_subcomponent(
        self,
        name: str,
        is_not_defined: bool = False,
        time_range: Optional[TimeRange] = None,
    ) -> "CompFilter":
        ret = CompFilter(name=name, is_not_defined=is_not_defined, time_range=time_range)
        self.comp_filters.append(ret)
        return ret

    def filter_property(
        self,
        name: str,
        is_not_defined: bool = False,
        time_range: Optional[TimeRange] = None,
    ) -> PropFilter:
        ret = PropFilter(name=name, is_not_defined=is_not_defined, time_range=time_range)
        self.prop_filters.append(ret)
        return ret


class CompFilter(ComponentScope):
    time_range: Optional[TimeRange]

    def __init__(
        self,
        name: str,
        is_not_defined: bool = False,
        time_range: Optional[TimeRange] = None,
        comp_filters: Optional[list["CompFilter"]] = None,
        prop_filters: Optional[list[PropFilter]] = None,
    ) -> None:
        self.name = name
        self.is_not_defined = is_not_defined
        self.time_range = time_range
        self.comp_filters = comp_filters or []
        self.prop_filters = prop_filters or []

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.name!r}, "
            f"is_not_defined={self.is_not_defined!r}, "
            f"time_range={self.time_range!r}, "
            f"comp_filters={self.comp_filters!r}, "
            f"prop_filters={self.prop_filters!r})"
        )

    def filter_time_range(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> TimeRange:
        self.time_range = TimeRange(start, end)
        return self.time_range


class Filter(ComponentScope):
    """The root CALDAV:filter element.

    The root matches the calendar object itself by name (normally
    VCALENDAR) and then applies its comp-filters and prop-filters to it.
    """

    def __init__(
        self,
        name: str = "VCALENDAR",
        comp_filters: Optional[list[CompFilter]] = None,
        prop_filters: Optional[list[PropFilter]] = None,
    ) -> None:
        self.name = name
        self.comp_filters = comp_filters or []
        self.prop_filters = prop_filters or []

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.name!r}, "
            f"comp_filters={self.comp_filters!r}, "
            f"prop_filters={self.prop_filters!r})"
        )
