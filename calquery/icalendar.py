# Calquery
# Copyright (C) 2017-2025 Jelmer Vernooĳ <jelmer@jelmer.uk>, et al.
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

"""ICalendar file handling."""

import itertools
import logging
from collections.abc import Iterable, Iterator
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

import dateutil.rrule
from icalendar.cal import Calendar, Component
from icalendar.prop import vCategory, vDate, vDatetime

from .tree import Node, ValueNode

TzifyFunction = Callable[[Union[datetime, date]], datetime]


class MissingProperty(Exception):
    def __init__(self, property_name) -> None:
        super().__init__(f"Property {property_name!r} missing")
        self.property_name = property_name


class InvalidFileContents(Exception):
    """Invalid file contents."""

    def __init__(self, content_type, content, error) -> None:
        super().__init__(error)
        self.content_type = content_type
        self.content = content
        self.error = error


def as_tz_aware_ts(
    dt: Union[datetime, date], default_timezone: Union[str, timezone, ZoneInfo]
) -> datetime:
    if not getattr(dt, "time", None):
        _dt = datetime.combine(dt, time())
    else:
        _dt = dt  # type: ignore
    if _dt.tzinfo is None:
        if isinstance(default_timezone, str):
            _dt = _dt.replace(tzinfo=ZoneInfo(default_timezone))
        else:
            _dt = _dt.replace(tzinfo=default_timezone)
    assert _dt.tzinfo
    return _dt


def apply_time_range_vevent(start, end, comp, tzify):
    dtstart = comp.get("DTSTART")
    if not dtstart:
        raise MissingProperty("DTSTART")

    if not (end > tzify(dtstart.dt)):
        return False

    dtend = comp.get("DTEND")
    if dtend:
        if tzify(dtend.dt) < tzify(dtstart.dt):
            logging.debug("Invalid DTEND < DTSTART")
        return start < tzify(dtend.dt)

    duration = comp.get("DURATION")
    if duration:
        return start < tzify(dtstart.dt) + duration.dt
    if isinstance(dtstart.dt, datetime):
        return start <= tzify(dtstart.dt)
    else:
        return start < (tzify(dtstart.dt) + timedelta(1))


def apply_time_range_vjournal(start, end, comp, tzify):
    dtstart = comp.get("DTSTART")
    if not dtstart:
        raise MissingProperty("DTSTART")

    if not (end > tzify(dtstart.dt)):
        return False

    if isinstance(dtstart.dt, datetime):
        return start <= tzify(dtstart.dt)
    else:
        return start < (tzify(dtstart.dt) + timedelta(1))


def apply_time_range_vtodo(start, end, comp, tzify):
    dtstart = comp.get("DTSTART")
    due = comp.get("DUE")

    # See RFC4719, section 9.9
    if dtstart:
        duration = comp.get("DURATION")
        if duration and not due:
            return start <= tzify(dtstart.dt) + duration.dt and (
                end > tzify(dtstart.dt) or end >= tzify(dtstart.dt) + duration.dt
            )
        elif due and not duration:
            return (start <= tzify(dtstart.dt) or start < tzify(due.dt)) and (
                end > tzify(dtstart.dt) or end < tzify(due.dt)
            )
        else:
            return start <= tzify(dtstart.dt) and end > tzify(dtstart.dt)

    if due:
        return start < tzify(due.dt) and end >= tzify(due.dt)

    completed = comp.get("COMPLETED")
    created = comp.get("CREATED")
    if completed:
        if created:
            return (start <= tzify(created.dt) or start <= tzify(completed.dt)) and (
                end >= tzify(created.dt) or end >= tzify(completed.dt)
            )
        else:
            return start <= tzify(completed.dt) and end >= tzify(completed.dt)
    elif created:
        return end >= tzify(created.dt)
    else:
        return True


TimeRangeFilter = Callable[[datetime, datetime, Component, TzifyFunction], bool]


# According to https://tools.ietf.org/html/rfc4791, section 9.9 these
# are the properties to check.
component_handlers: dict[str, TimeRangeFilter] = {
    "VEVENT": apply_time_range_vevent,
    "VTODO": apply_time_range_vtodo,
    "VJOURNAL": apply_time_range_vjournal,
}


def rruleset_from_comp(comp: Component) -> dateutil.rrule.rruleset:
    dtstart = comp["DTSTART"].dt
    rrulestr = comp["RRULE"].to_ical().decode("utf-8")
    rrule = dateutil.rrule.rrulestr(rrulestr, dtstart=dtstart)
    rs = dateutil.rrule.rruleset()
    rs.rrule(rrule)  # type: ignore
    if "EXDATE" in comp:
        for exdate in _as_list(comp["EXDATE"]):
            for d in exdate.dts:
                rs.exdate(_normalize_dt_for_rrule(d.dt, dtstart))
    if "RDATE" in comp:
        for rdate in _as_list(comp["RDATE"]):
            for d in rdate.dts:
                if isinstance(d.dt, (date, datetime)):
                    rs.rdate(_normalize_dt_for_rrule(d.dt, dtstart))
    if "EXRULE" in comp:
        for exrule in _as_list(comp["EXRULE"]):
            exrulestr = exrule.to_ical().decode("utf-8")
            rs.exrule(dateutil.rrule.rrulestr(exrulestr, dtstart=dtstart))
    return rs


def _as_list(value):
    if isinstance(value, list):
        return value
    return [value]


def _get_event_duration(comp: Component) -> Optional[timedelta]:
    """Get the duration of an event component."""
    if "DURATION" in comp:
        return comp["DURATION"].dt
    elif "DTEND" in comp and "DTSTART" in comp:
        return comp["DTEND"].dt - comp["DTSTART"].dt
    elif "DUE" in comp and "DTSTART" in comp:
        return comp["DUE"].dt - comp["DTSTART"].dt
    return None


def _normalize_dt_for_rrule(
    dt: Union[date, datetime], original_dt: Union[date, datetime]
) -> datetime:
    """Normalize a datetime for rrule operations based on the original event type.

    The rrule library requires the search bounds to match the type of the
    original DTSTART:
    - For date-only events, use naive datetimes at midnight
    - For floating time events, use naive datetimes
    - For timezone-aware events, use aware datetimes
    """
    if not isinstance(original_dt, datetime):
        if isinstance(dt, datetime):
            return datetime.combine(dt.date(), time.min)
        return datetime.combine(dt, time.min)

    if not isinstance(dt, datetime):
        dt = datetime.combine(dt, time.min)
    if original_dt.tzinfo is None and dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    elif original_dt.tzinfo is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=original_dt.tzinfo)
    return dt


def create_prop_from_date_or_datetime(dt):
    """Create appropriate vDate or vDatetime property based on input type."""
    if isinstance(dt, date) and not isinstance(dt, datetime):
        return vDate(dt)
    else:
        return vDatetime(dt)


def expand_component_instances(
    incomp: Component,
    start: datetime,
    end: datetime,
    overridden: Iterable[Union[date, datetime]] = (),
) -> Iterator[Component]:
    """Yield the instances of a recurring component near a time range.

    Instances are copies of the master component with DTSTART (and DTEND or
    DUE, if present) moved to the occurrence. The master itself is left
    untouched. Occurrences are generated lazily, so callers may stop early
    even when ``end`` is far away.

    Args:
      incomp: Master component with an RRULE
      start: Start of the range
      end: End of the range
      overridden: RECURRENCE-ID values of instances replaced by other
        components; these are skipped
    Raises:
      MissingProperty: if the component has no DTSTART
    """
    if "DTSTART" not in incomp:
        raise MissingProperty("DTSTART")
    original_dtstart = incomp["DTSTART"].dt
    rs = rruleset_from_comp(incomp)
    skip = {_normalize_dt_for_rrule(dt, original_dtstart) for dt in overridden}

    # Adjust start backwards by the duration to catch overlapping instances
    duration = _get_event_duration(incomp)
    adjusted_start = start - duration if duration else start

    end_normalized = _normalize_dt_for_rrule(end, original_dtstart)
    occurrences = itertools.takewhile(
        lambda ts: ts <= end_normalized,
        rs.xafter(_normalize_dt_for_rrule(adjusted_start, original_dtstart), inc=True),
    )

    for ts in occurrences:
        if ts in skip:
            continue
        if not isinstance(original_dtstart, datetime):
            ts = ts.date()
        outcomp = incomp.copy()
        for field in ["RRULE", "EXRULE", "RDATE", "EXDATE"]:
            if field in outcomp:
                del outcomp[field]
        outcomp["DTSTART"] = create_prop_from_date_or_datetime(ts)
        for field in ["DTEND", "DUE"]:
            if field in incomp:
                offset = incomp[field].dt - original_dtstart
                outcomp[field] = create_prop_from_date_or_datetime(ts + offset)
        yield outcomp


class CalendarParameter(ValueNode):
    """A property parameter, such as TZID or PARTSTAT."""

    def __init__(self, name: str, value) -> None:
        self.name = name
        self._value = value

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, {self._value!r})"

    def has_named_child(self, name: str) -> bool:
        return False

    def select_named_children(self, name: str) -> list[Node]:
        return []

    def children(self) -> list[Node]:
        return []

    def get_value(self) -> str:
        if isinstance(self._value, (list, tuple)):
            return ",".join(str(v) for v in self._value)
        return str(self._value)

    def get_datetime(self) -> datetime:
        raise ValueError(f"parameter {self.name} does not hold a date-time")


class CalendarProperty(ValueNode):
    """A single property value on a calendar component."""

    def __init__(self, name: str, value, tzify: TzifyFunction) -> None:
        self.name = name
        self._value = value
        self._tzify = tzify

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, {self._value!r})"

    @property
    def params(self):
        return getattr(self._value, "params", {})

    def has_named_child(self, name: str) -> bool:
        return name in self.params

    def select_named_children(self, name: str) -> list[Node]:
        try:
            value = self.params[name]
        except KeyError:
            return []
        return [CalendarParameter(name.upper(), value)]

    def children(self) -> list[Node]:
        return [CalendarParameter(k.upper(), v) for (k, v) in self.params.items()]

    def get_value(self) -> str:
        if isinstance(self._value, str):
            return str(self._value)
        elif isinstance(self._value, vCategory):
            return ",".join(str(cat) for cat in self._value.cats)
        try:
            return self._value.to_ical().decode("utf-8")
        except AttributeError:
            logging.debug(
                "potentially unsupported value in text match search: %r", self._value
            )
            return str(self._value)

    def get_datetime(self) -> datetime:
        dt = getattr(self._value, "dt", None)
        if not isinstance(dt, (date, datetime)):
            raise ValueError(f"{self.name} value {self._value!r} is not a date")
        return self._tzify(dt)

    def tzify(self, dt: Union[date, datetime]) -> datetime:
        return self._tzify(dt)


def _override_key(comp: Component):
    return (comp.name, str(comp.get("UID", "")))


class CalendarComponent(Node):
    """A calendar component, such as VCALENDAR, VEVENT or VALARM.

    Args:
      component: The wrapped icalendar component
      tzify: Function making dates and floating times timezone-aware
      overridden: RECURRENCE-ID values of instances of this component
        that are replaced by sibling components
    """

    def __init__(
        self,
        component: Component,
        tzify: TzifyFunction,
        overridden: Iterable[Union[date, datetime]] = (),
    ) -> None:
        self.component = component
        self.name = component.name
        self._tzify = tzify
        self.overridden = list(overridden)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.component!r})"

    def _properties(self, name: str) -> list[Node]:
        try:
            values = self.component[name]
        except KeyError:
            return []
        return [
            CalendarProperty(name.upper(), value, self._tzify)
            for value in _as_list(values)
        ]

    def _subcomponents(self, name: Optional[str] = None) -> list[Node]:
        overrides: dict[tuple[str, str], list] = {}
        for sub in self.component.subcomponents:
            if "RECURRENCE-ID" in sub:
                overrides.setdefault(_override_key(sub), []).append(
                    sub["RECURRENCE-ID"].dt
                )
        ret: list[Node] = []
        for sub in self.component.subcomponents:
            if name is not None and sub.name != name:
                continue
            if "RRULE" in sub and "RECURRENCE-ID" not in sub:
                overridden = overrides.get(_override_key(sub), [])
            else:
                overridden = []
            ret.append(CalendarComponent(sub, self._tzify, overridden))
        return ret

    def has_named_child(self, name: str) -> bool:
        if name in self.component:
            return True
        return any(sub.name == name.upper() for sub in self.component.subcomponents)

    def select_named_children(self, name: str) -> list[Node]:
        ret = self._subcomponents(name.upper())
        ret.extend(self._properties(name))
        return ret

    def children(self) -> list[Node]:
        ret: list[Node] = []
        for name in self.component:
            ret.extend(self._properties(name))
        ret.extend(self._subcomponents())
        return ret

    def is_in_time_range(self, start: datetime, end: datetime) -> bool:
        try:
            handler = component_handlers[self.name]
        except KeyError as exc:
            raise NotImplementedError(
                f"time ranges are not supported on {self.name}"
            ) from exc
        start = self._tzify(start)
        end = self._tzify(end)
        try:
            if "RRULE" in self.component:
                instances: Iterable[Component] = expand_component_instances(
                    self.component, start, end, self.overridden
                )
            else:
                instances = [self.component]
            return any(
                handler(start, end, instance, self._tzify) for instance in instances
            )
        except MissingProperty as e:
            logging.warning(
                "calendar_query: Ignoring %s component, due to missing property %s",
                self.name,
                e.property_name,
            )
            return False


class ICalendarFile:
    """Handle for ICalendar files."""

    content_type = "text/calendar"

    def __init__(self, content: Iterable[bytes], content_type: str) -> None:
        self.content = content
        self.content_type = content_type
        self._calendar = None

    @property
    def calendar(self) -> Calendar:
        if self._calendar is None:
            try:
                self._calendar = Calendar.from_ical(b"".join(self.content))
            except ValueError as exc:
                raise InvalidFileContents(
                    self.content_type, self.content, str(exc)
                ) from exc
        return self._calendar

    def get_root(
        self, default_timezone: Union[str, timezone, ZoneInfo] = timezone.utc
    ) -> CalendarComponent:
        """Return the calendar wrapped for filter validation.

        Args:
          default_timezone: Timezone for floating times and dates
        Raises:
          InvalidFileContents: If the file can not be parsed
        """
        return CalendarComponent(
            self.calendar, lambda dt: as_tz_aware_ts(dt, default_timezone)
        )
