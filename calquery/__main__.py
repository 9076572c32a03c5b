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

"""Calquery command-line handling."""

import argparse
import logging
import os
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import __version__
from .caldav import parse_calendar_query
from .config import FILENAME, QueryConfig
from .icalendar import ICalendarFile
from .query import CalendarQuery
from .validator import BadRequestError, UnsupportedFilter


# If no subparser is given, default to 'query'
def set_default_subparser(self, argv, name):
    subparser_found = False
    for arg in argv:
        if arg in ["-h", "--help", "--version"]:
            break
    else:
        for x in self._subparsers._actions:
            if not isinstance(x, argparse._SubParsersAction):
                continue
            for sp_name in x._name_parser_map.keys():
                if sp_name in argv:
                    subparser_found = True
        if not subparser_found:
            argv.insert(0, name)


def add_query_parser(parser):
    parser.add_argument(
        "-f", "--filter", dest="filter", required=True,
        help="File with a CALDAV:calendar-query or CALDAV:filter document.")
    parser.add_argument(
        "-c", "--config", dest="config", default=None,
        help="Configuration file. [%s in the current directory]" % FILENAME)
    parser.add_argument(
        "--timezone", dest="timezone", default=None,
        help="Timezone for floating times and dates.")
    parser.add_argument(
        "--strict", action="store_true", dest="strict",
        help="Reject unknown elements in the query.")
    parser.add_argument(
        "--debug", action="store_true", dest="debug",
        help="Print debug messages.")
    parser.add_argument(
        "files", nargs="+", metavar="FILE",
        help="Calendar files to check.")


def load_config(path):
    if path is None:
        if not os.path.exists(FILENAME):
            return QueryConfig()
        path = FILENAME
    return QueryConfig.from_path(path)


def _read_file(path):
    with open(path, "rb") as f:
        return ICalendarFile([f.read()], "text/calendar")


def query_main(args, parser):
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)

    config = load_config(args.config)

    with open(args.filter, "rb") as f:
        body = f.read()

    try:
        (filter, query_tz) = parse_calendar_query(
            body,
            strict=args.strict,
            default_collation=config.get_collation(),
            max_depth=config.get_max_depth(),
        )
    except BadRequestError as e:
        logging.error("Invalid filter in %s: %s", args.filter, e.message)
        return 1

    if args.timezone is not None:
        try:
            tz = ZoneInfo(args.timezone)
        except ZoneInfoNotFoundError:
            parser.error(f"unknown timezone {args.timezone!r}")
    elif query_tz is not None:
        tz = query_tz
    else:
        tz = config.get_timezone()

    query = CalendarQuery(
        filter,
        default_timezone=tz,
        min_date=config.get_min_date(),
        max_date=config.get_max_date(),
    )

    unreadable = []

    def read_files(paths):
        for path in paths:
            try:
                yield (path, _read_file(path))
            except OSError as e:
                logging.error("Unable to read %s: %s", path, e)
                unreadable.append(path)

    try:
        for name in query.matching(read_files(args.files)):
            print(name)
    except (BadRequestError, UnsupportedFilter) as e:
        logging.error("Unable to apply filter: %s", e.message)
        return 1
    if unreadable:
        return 1
    return 0


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    parser = argparse.ArgumentParser(prog="calquery")

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s " + ".".join(map(str, __version__)),
    )

    subparsers = parser.add_subparsers(help="Subcommands", dest="subcommand")
    query_parser = subparsers.add_parser(
        "query",
        usage="%(prog)s -f FILTER [OPTIONS] FILE...",
        help="Print the calendar files that match a calendar-query filter",
    )
    add_query_parser(query_parser)

    set_default_subparser(parser, argv, "query")
    args = parser.parse_args(argv)

    if args.subcommand == "query":
        return query_main(args, query_parser)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
