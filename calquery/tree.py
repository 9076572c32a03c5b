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

"""Calendar object nodes, as seen by the filter validator."""

from collections.abc import Sequence
from datetime import datetime, timezone


class Node:
    """A node in a calendar object tree.

    Components, properties and parameters are all nodes. Children are
    addressed by name.
    """

    name: str

    def has_named_child(self, name: str) -> bool:
        """Check whether a child with the given name exists."""
        raise NotImplementedError(self.has_named_child)

    def select_named_children(self, name: str) -> Sequence["Node"]:
        """Return all children with the given name, in document order."""
        raise NotImplementedError(self.select_named_children)

    def children(self) -> Sequence["Node"]:
        raise NotImplementedError(self.children)

    def is_in_time_range(self, start: datetime, end: datetime) -> bool:
        """Check whether any instance of this component overlaps a range.

        Only meaningful for VEVENT, VTODO and VJOURNAL components.
        """
        raise NotImplementedError(self.is_in_time_range)


class ValueNode(Node):
    """A node that carries a value (a property or a parameter)."""

    def get_value(self) -> str:
        """Return the value to use for text matching."""
        raise NotImplementedError(self.get_value)

    def get_datetime(self) -> datetime:
        """Return the value as a timezone-aware datetime.

        :raise ValueError: if the value is not a date or date-time
        """
        raise NotImplementedError(self.get_datetime)

    def tzify(self, dt: datetime) -> datetime:
        """Make a date-time comparable with the value of this node.

        Naive date-times are taken to be in UTC unless the node knows
        better.
        """
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt
