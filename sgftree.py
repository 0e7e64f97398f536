#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# sgftree.py (Smart Game Format game tree parser)
# Copyright © 2000-2021 David John Goodger (goodger@python.org)
#
# This library is free software; you can redistribute it and/or modify it
# under the terms of the GNU Lesser General Public License as published by the
# Free Software Foundation; either version 2 of the License, or (at your
# option) any later version.
#
# This library is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or
# FITNESS FOR A PARTICULAR PURPOSE.  See the GNU Lesser General Public License
# for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# (lgpl.txt) along with this library; if not, write to the Free Software
# Foundation, Inc., 59 Temple Place, Suite 330, Boston, MA  02111-1307  USA
# The license is currently available on the Internet at:
#     http://www.gnu.org/copyleft/lesser.html

"""
=============================================
 Smart Game Format Game Tree Parser: sgftree
=============================================

version 1.0

Description
===========

This library turns the text of an SGF (Smart Game Format) game record into a
tree of `GameNode` objects hanging off a `Game`. SGF is a text only, tree
based format: nodes start with ";", variations are wrapped in "(" and ")",
and every node carries properties written as ``KEY[value]`` (or
``KEY[value][value]...`` for lists).

Given a string containing a game record, `parse()` (or `Parser.parse()`)
returns a `Game`:

* Game-level information (players, board size, komi, setup stones, ...) is
  collected in `Game.properties`, no matter which node it was written in.

* Node-level information (moves, comments, markup, clock readings) is stored
  in `GameNode.properties` of the node where it appears.

* Every node carrying a black or white move gets a move number. Each
  variation restarts numbering from the move it branches off.

The property vocabulary is closed. An unknown property ID aborts the parse
with `UnsupportedPropertyError`; the legacy ``L`` property is dropped.

In addition, `SummaryCLI` summarizes the game information of one or more SGF
files (console script ``sgftree-summary``).
"""


import sys
import os
import os.path
import logging
import warnings
import argparse
import re
import textwrap


TEXT_ENCODING = 'UTF-8'
"""Default encoding used to decode game records."""

FALLBACK_ENCODING = 'latin-1'
"""Encoding used to sniff the ``CA`` (charset) property before decoding."""

logger = logging.getLogger('sgftree')


# Property vocabulary (http://www.red-bean.com/sgf/properties.html)

GAME_PROPERTIES = frozenset((
    'AP',       # application used to generate the record
    'BR',       # black rank
    'WR',       # white rank
    'KM',       # komi
    'PB',       # black player
    'PW',       # white player
    'CA',       # charset
    'FF',       # file format
    'GM',       # game type (1 is Go)
    'SZ',       # board size
    'AN',       # annotator
    'RU',       # rules
    'TM',       # time limit in seconds
    'OT',       # overtime method
    'DT',       # date
    'PC',       # place
    'RE',       # result
    'ST',       # how to show variations
    'PM',       # how to print move numbers
    'FG',       # figure (printing)
    'GN',       # game name
    'TB',       # black territory
    'TW',       # white territory
    'HA',       # handicap
    'AB',       # add black stones
    'AW',       # add white stones
    'AE',       # add empty points
    'PL',       # player to move
    'KGSDE',    # KGS: dead stones
    'KGSSW',    # KGS: white score
    'KGSSB',    # KGS: black score
    ))
"""Property IDs recorded once per game, wherever they appear in the tree."""

NODE_PROPERTIES = frozenset((
    'B',        # black move
    'W',        # white move
    'CR',       # circle markup
    'MA',       # cross markup
    'SL',       # selected points
    'LB',       # point labels
    'TR',       # triangle markup
    'OW',       # white stones left in byo-yomi period
    'OB',       # black stones left in byo-yomi period
    'WL',       # white time left
    'BL',       # black time left
    'C',        # comment
    ))
"""Property IDs recorded on the node where they appear."""

COORDINATE_LIST_PROPERTIES = frozenset(('AB', 'AW'))
"""Game-scope property IDs whose values are lists of points, stored
comma-joined."""

LEGACY_PROPERTIES = frozenset(('L',))
"""Property IDs recognized but not stored. ``L`` (FF[1-3] labels) was
replaced by ``LB``."""

MOVE_PROPERTIES = frozenset(('B', 'W'))
"""Node property IDs that make a node a move."""

# Property handling policies, returned by `Parser.classify_property()`:
COORDINATE_LIST = 'coordinate list'
GAME_SCOPE = 'game'
NODE_SCOPE = 'node'
LEGACY = 'legacy'


class Error(Exception):
    """Base class for sgftree exceptions."""
    pass

class ParseError(Error):
    """Base class for parsing exceptions."""
    pass

class UnsupportedPropertyError(ParseError):

    """
    Raised by `Parser.classify_property()` for a property ID outside the
    supported vocabulary. Fatal: the whole parse is abandoned.
    """

    def __init__(self, property_id, value, token):
        self.property_id = property_id
        self.value = value
        self.token = token
        super().__init__(
            f"Unsupported property '{property_id}'={value!r} "
            f"found in '{token}'")


class GameNode:

    """
    One node of a game tree: a move, a setup position, or just a comment.

    Instance attributes:

    - self.parent : `GameNode` or None -- The node this one continues from.
      Set once, on construction.
    - self.children : list of `GameNode` -- Continuations, in document order.
      ``self.children[0]`` continues the main line.
    - self.properties : dict -- Node-scope property ID to value.
    - self.move_no : int or None -- Move number, set for move nodes only.
    """

    def __init__(self, parent=None):
        self.parent = parent
        self.children = []
        self.properties = {}
        self.move_no = None

    def __repr__(self):
        args = ['{}={!r}'.format(key, value)
                for key, value in self.properties.items()]
        if self.move_no is not None:
            args.append(f'move_no={self.move_no}')
        return '{}({})'.format(self.__class__.__name__, ', '.join(args))

    def add_property(self, key, value):
        self.properties[key] = value

    def get_property(self, key, default=None):
        return self.properties.get(key, default)

    def add_child(self, node):
        self.children.append(node)

    @property
    def is_move(self):
        """True iff this node carries a black or white move."""
        return not MOVE_PROPERTIES.isdisjoint(self.properties)

    @property
    def color(self):
        """'B' or 'W' for move nodes, None otherwise."""
        for key in ('B', 'W'):
            if key in self.properties:
                return key
        return None

    @property
    def move(self):
        """The raw move coordinate text, or None."""
        color = self.color
        return None if color is None else self.properties[color]

    @property
    def next_node(self):
        return self.children[0] if self.children else None

    def nearest_move_no(self):
        """
        Return the move number of this node or of its closest ancestor that
        is a move; 0 if there is none.
        """
        node = self
        while node is not None:
            if node.move_no is not None:
                return node.move_no
            node = node.parent
        return 0


class Game:

    """
    A parsed game record.

    Instance attributes:

    - self.properties : dict -- Game-scope property ID to value, in order of
      first appearance.
    - self.root : `GameNode` or None -- The first node of the record.
    - self.path : string or None -- Source path, set by `Game.load()`.
    """

    path = None

    def __init__(self):
        self.properties = {}
        self.root = None

    def __repr__(self):
        args = ['{}={!r}'.format(key, value)
                for key, value in self.properties.items()]
        args.append('root={!r}'.format(self.root))
        return '{}({})'.format(self.__class__.__name__, ', '.join(args))

    def __iter__(self):
        """Iterate over all nodes in document (pre-)order."""
        if self.root is None:
            return
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def add_property(self, key, value):
        """
        Record a game-scope property. A repeated key overwrites the earlier
        value; a differing value is reported with a warning.
        """
        if key in self.properties and self.properties[key] != value:
            warnings.warn(
                f'Duplicate game property "{key}" '
                f'(existing value: "{self.properties[key]}"; '
                f'new value: "{value}"). Keeping new value.')
        self.properties[key] = value

    def get_property(self, key, default=None):
        return self.properties.get(key, default)

    def node_count(self):
        return sum(1 for node in self)

    def main_line(self):
        """Return the list of nodes from the root along first children."""
        nodes = []
        node = self.root
        while node is not None:
            nodes.append(node)
            node = node.next_node
        return nodes

    def move_count(self):
        """Return the number of moves played on the main line."""
        return sum(1 for node in self.main_line() if node.is_move)

    @classmethod
    def load(cls, path=None, data=None, encoding=None, parser_class=None):
        """
        Return a `Game` loaded from a filesystem `path` (`None` or "-" reads
        from <stdin>) or from `data` (`str`, or `bytes` to be decoded).

        Bytes are decoded with `encoding` if given, else with the charset
        named by the record's ``CA`` property, else with `TEXT_ENCODING`.

        The default `parser_class` is `Parser`.
        """
        if data is None:
            if path == '-':
                path = None
            if path:
                with open(path, 'rb') as src:
                    data = src.read()
            else:
                # read bytestring from <stdin>:
                data = sys.stdin.buffer.read()
        if isinstance(data, bytes):
            data = decode(data, encoding)
        if parser_class is None:
            parser_class = Parser
        game = parser_class(data).parse()
        game.path = path
        return game


charset_pattern = re.compile(r'CA\s*\[([^\]]*)\]')

def decode(data, encoding=None):
    """
    Decode the bytestring `data`. Without an explicit `encoding`, use the
    ``CA`` property value when it names a usable text encoding.
    """
    if encoding is None:
        encoding = TEXT_ENCODING
        match = charset_pattern.search(data.decode(FALLBACK_ENCODING))
        if match:
            charset = match.group(1).strip()
            try:
                return data.decode(charset)
            except LookupError:
                # unknown, or not a text encoding (e.g. "base64")
                logger.debug('Unusable charset %r; decoding as %s',
                             charset, encoding)
    return data.decode(encoding)


class Parser:

    """
    Parser for one SGF game record. `Parser.parse()` returns a `Game`.

    The whole input is scanned once, left to right. Each unescaped ";"
    starts a node, whose text is cut out by `scan_node()` and turned into
    properties by `parse_node()`. "(" and ")" only move the current parent
    on and off a stack of branch points.

    Unbalanced parentheses are tolerated: a ")" without a matching "(" is
    ignored, and branches still open at the end of input are dropped.
    """

    delimiters = ';()'
    """Characters ending a node's text (unless escaped or in a comment)."""

    property_pattern = re.compile(r'([A-Za-z]+)((?:\[[^\]]*\])+)')
    """A property ID followed by one or more bracketed values."""

    bracket_placeholders = ('\ue000', '\ue001')
    """Stand-ins for escaped "[" and "]" while matching properties
    (private-use characters, never found in real records)."""

    restore_escaped_brackets = True
    """Turn escaped brackets back into literal "[" and "]" in stored values.
    If false, the placeholders are left in place. May be overridden
    (preferably in instances)."""

    def __init__(self, data):
        self.data = data
        """The complete game record (`str`)."""

        self.datalen = len(data)
        """Length of `self.data`."""

    def parse(self):
        """
        Parse `self.data` and return a `Game`.

        Raise `UnsupportedPropertyError` if an unknown property is found.
        """
        game = Game()
        parent = None
        branch_points = []
        move_no = 1
        index = 0
        while index < self.datalen:
            char = self.data[index]
            if char == ';' and (index == 0 or self.data[index-1] != '\\'):
                token, index = self.scan_node(index)
                node = self.parse_node(token, parent, game)
                if node.is_move:
                    node.move_no = move_no
                    move_no += 1
                if parent is None:
                    game.root = node
                else:
                    parent.add_child(node)
                parent = node
                # `index` is now at the delimiter that ended the node
                continue
            elif char == '(' and parent is not None:
                branch_points.append(parent)
            elif char == ')':
                if branch_points:
                    parent = branch_points.pop()
                    move_no = parent.nearest_move_no() + 1
                else:
                    logger.debug('Ignoring unmatched ")" at index %s', index)
            index += 1
        if branch_points:
            logger.debug('%s unclosed variation(s) at end of input',
                         len(branch_points))
        return game

    def scan_node(self, index):
        """
        Return ``(token, end)``: the stripped text of the node whose ";" is
        at `index`, and the index of the delimiter that ended it (or the
        length of the input).

        Delimiters preceded by a backslash don't end the node. Inside a
        comment (``C[...]``), delimiters are plain text and only an unescaped
        "]" ends the comment.
        """
        data = self.data
        in_comment = False
        end = index + 1
        while end < self.datalen:
            char = data[end]
            if in_comment:
                if char == ']' and data[end-1] != '\\':
                    in_comment = False
            elif char == 'C' and data[end+1:end+2] == '[':
                in_comment = True
            elif char in self.delimiters and data[end-1] != '\\':
                break
            end += 1
        return data[index+1:end].strip(), end

    def extract_properties(self, token):
        """
        Return a list of ``(property ID, raw value)`` pairs found in the node
        text `token`.

        A list value keeps its inner "][" separators: ``AB[aa][bb]`` gives
        ``('AB', 'aa][bb')``. Escaped brackets are replaced by
        `bracket_placeholders`.
        """
        open_placeholder, close_placeholder = self.bracket_placeholders
        token = (token.replace('\\[', open_placeholder)
                 .replace('\\]', close_placeholder))
        properties = []
        for match in self.property_pattern.finditer(token):
            # strip the first "[" and the last "]" only:
            properties.append((match.group(1), match.group(2)[1:-1]))
        return properties

    def classify_property(self, property_id, value=''):
        """
        Return the handling policy for `property_id`: `COORDINATE_LIST`,
        `GAME_SCOPE`, `NODE_SCOPE`, or `LEGACY`.

        Raise `UnsupportedPropertyError` for any other property ID.
        """
        if property_id in COORDINATE_LIST_PROPERTIES:
            return COORDINATE_LIST
        elif property_id in GAME_PROPERTIES:
            return GAME_SCOPE
        elif property_id in NODE_PROPERTIES:
            return NODE_SCOPE
        elif property_id in LEGACY_PROPERTIES:
            return LEGACY
        raise UnsupportedPropertyError(
            property_id, self.restore_brackets(value),
            f'{property_id}[{self.escape_placeholders(value)}]')

    def parse_node(self, token, parent, game):
        """
        Return a new `GameNode` (child-to-be of `parent`) holding the
        node-scope properties of `token`. Game-scope properties are added to
        `game`.
        """
        node = GameNode(parent)
        properties = self.extract_properties(token)
        if token and not properties:
            logger.debug('No properties found in node %r', token)
        for (property_id, value) in properties:
            policy = self.classify_property(property_id, value)
            if policy == COORDINATE_LIST:
                game.add_property(property_id, ','.join(
                    self.restore_brackets(point)
                    for point in self.split_coordinate_list(value)))
            elif policy == GAME_SCOPE:
                game.add_property(property_id, self.restore_brackets(value))
            elif policy == NODE_SCOPE:
                node.add_property(
                    property_id,
                    self.restore_brackets(self.unescape_value(value)))
            else:
                logger.debug('Not handling %s = %s', property_id, value)
        return node

    @staticmethod
    def split_coordinate_list(value):
        """Split a raw list value (``'aa][bb][cc'``) into its items."""
        return value.split('][')

    @staticmethod
    def unescape_value(value):
        return value.replace('\\;', ';')

    def escape_placeholders(self, value):
        """Undo the escaped-bracket substitution of `extract_properties()`."""
        open_placeholder, close_placeholder = self.bracket_placeholders
        return (value.replace(open_placeholder, '\\[')
                .replace(close_placeholder, '\\]'))

    def restore_brackets(self, value):
        if not self.restore_escaped_brackets:
            return value
        open_placeholder, close_placeholder = self.bracket_placeholders
        return (value.replace(open_placeholder, '[')
                .replace(close_placeholder, ']'))


def parse(text):
    """Parse the game record `text` and return a `Game`."""
    return Parser(text).parse()


class Summary:

    """
    Read, parse, and summarize one SGF file.

    Command-line interface provided by `SummaryCLI` class.
    """

    summary_format = (
        '{DT}\t{RE}\t{PW}\t{WR}\t{PB}\t{BR}\t{KM}\t{HA}\t'
        '{SZ}\t{TM}\t{OT}\t{GN}\t{PC}\t{nodes}\t{moves}\t{filename}')

    summary_fields = {
        'DT' : 'Date',
        'RE' : 'Result',
        'PW' : 'White',
        'WR' : 'W Rank',
        'PB' : 'Black',
        'BR' : 'B Rank',
        'KM' : 'Komi',
        'HA' : 'Handicap',
        'SZ' : 'Board Size',
        'TM' : 'Main Time',
        'OT' : 'Overtime',
        'GN' : 'Game Name',
        'PC' : 'Place',
        'nodes' : 'Nodes',
        'moves' : 'Moves',
        'filename' : 'Filename',
        }

    summary_header = summary_format.format(**summary_fields)

    def __init__(self, path):
        """
        Arguments:

        - path : string -- Path to the source SGF file.
        """

        self.path = path

        self.filename = os.path.basename(path)
        """Name of file being summarized."""

        self.is_sgf = False
        """File validity flag."""

        self.error = None
        """The exception that made the file invalid, if any."""

        self.properties = {}
        """Summary field values."""

    def __str__(self):
        """
        Return the summary line for the file, or an empty string if the file
        was not a valid game record.
        """
        if self.is_sgf:
            return self.summary_format.format(**self.properties)
        else:
            return ''

    def summarize(self):
        """
        Parse the file and collect its summary. Return ``True`` for success,
        ``False`` for failure.
        """
        self.reset_properties()
        self.is_sgf = False
        try:
            game = Game.load(self.path)
        except (ParseError, UnicodeDecodeError, LookupError) as error:
            self.error = error
            logger.debug('Cannot summarize "%s": %s', self.path, error)
            return False
        if game.root is None:
            return False
        for key in self.summary_fields:
            if key in game.properties:
                self.properties[key] = game.properties[key].strip()
        self.properties['nodes'] = game.node_count()
        self.properties['moves'] = game.move_count()
        self.is_sgf = True
        return True

    def reset_properties(self):
        for key in self.summary_fields:
            self.properties[key] = ''
        self.properties['filename'] = self.filename


class CLI:

    """
    Base class for command-line tools. Subclasses define `execute()` and
    `argument_specs` (``(names, keyword arguments)`` pairs for
    `argparse.add_argument`); the class docstring becomes the --help text.
    """

    def __init__(self, settings=None, argv=None):
        """Instantiate to process the command-line arguments."""
        if settings is None:
            settings = self.process_command_line(argv)
        self.settings = settings

    def run(self):
        if getattr(self.settings, 'verbose', False):
            logging.basicConfig(
                level=logging.DEBUG, format='%(name)s: %(message)s')
        self.execute()

    help_option_spec = (
        ('--help', '-h',),
        {'action': 'help', 'help': 'Show this help message.'})

    verbose_option_spec = (
        ('--verbose', '-v',),
        {'action': 'store_true',
         'default': False,
         'help': 'Log parsing diagnostics to <stderr>.'})

    @classmethod
    def process_command_line(cls, argv=None):
        """Return the parsed `argv` (default: ``sys.argv[1:]``) namespace."""
        parser = argparse.ArgumentParser(
            description=textwrap.dedent(cls.__doc__),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            # Help option added manually (below) for consistency:
            add_help=False,)
        for names, params in cls.argument_specs:
            parser.add_argument(*names, **params)
        for names, params in (cls.verbose_option_spec, cls.help_option_spec):
            parser.add_argument(*names, **params)
        if argv is None:
            argv = sys.argv[1:]
        settings = parser.parse_args(argv)
        return settings


class SummaryCLI(CLI):

    # Command-Line Interface implementation.

    """
    Read one or more SGF (Smart Game Format) files and summarize their game
    information to standard output. The output is a tab-delimited table with
    one line (record) for each file. The first line of the output contains
    the column headers (field names).

    The output consists of the following fields::

        Date            Result          White           W Rank
        Black           B Rank          Komi            Handicap
        Board Size      Main Time       Overtime        Game Name
        Place           Nodes           Moves           Filename
    """

    def execute(self):
        """
        Iterate through SGF files, outputting summaries.
        """
        print(Summary.summary_header)
        for path in self.settings.source_file_or_dir_paths:
            if os.path.isdir(path):
                srcpath = path
                srcfiles = sorted(os.listdir(path))
            else:
                srcpath, srcfile = os.path.split(path)
                srcfiles = [srcfile]
            for filename in srcfiles:
                file_path = os.path.join(srcpath, filename)
                if os.path.isdir(file_path):
                    # ignore subdirectories
                    continue
                sgfsum = Summary(file_path)
                if sgfsum.summarize():
                    print(sgfsum)
                else:
                    print(f'Not a valid game record: "{file_path}"')

    argument_specs = (
        (('source_file_or_dir_paths',),
         {'type': str,
          'nargs': '+',
          'help': ('Paths to SGF files or directories containing SGF files '
                   'to summarize.')}),
        )


def main(argv=None):
    SummaryCLI(argv=argv).run()


if __name__ == '__main__':
    main()
