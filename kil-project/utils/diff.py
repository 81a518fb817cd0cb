# What it does: The line-diff engine. Turns two snapshots of a file into a FileDiff made of contiguous insertion and deletion runs, writes/reads that diff as text, and replays it on the old snapshot
# How it does: compare_lines() makes one pass over difflib's opcodes and feeds each changed line, in position order, to a DiffBuilder. The builder keeps one pending run per kind and seals it whenever the next position breaks that kind's contiguity rule
# What data structure it uses: List (pending runs), Tuple (sealed, immutable elements), and the difflib matching-blocks sequence

import difflib

from .errors import CorruptRepository
from .filesystem import read_lines

INSERTION = '+'
DELETION = '-'


class Line:
    # Positional metadata plus text; two lines are the same line when their text matches
    __slots__ = ('_position', '_text')

    def __init__(self, position, text):
        self._position = position
        self._text = text

    @property
    def position(self):
        return self._position

    @property
    def text(self):
        return self._text

    def __eq__(self, other):
        if not isinstance(other, Line):
            return NotImplemented
        return self._text == other._text

    def __hash__(self):
        return hash(self._text)

    def __repr__(self):
        return f"Line({self._position}, {self._text!r})"


class DiffElement:
    def __init__(self, kind, lines):
        if kind not in (INSERTION, DELETION):
            raise ValueError(f"unknown diff element kind: {kind!r}")
        if not lines:
            raise ValueError("a diff element needs at least one line")
        self.kind = kind
        self.lines = tuple(lines)

    @property
    def start(self):
        return self.lines[0].position

    def __len__(self):
        return len(self.lines)

    def __eq__(self, other):
        if not isinstance(other, DiffElement):
            return NotImplemented
        return (self.kind, self.start, [l.text for l in self.lines]) == \
            (other.kind, other.start, [l.text for l in other.lines])

    def __repr__(self):
        return f"DiffElement({self.kind!r}, start={self.start}, lines={len(self.lines)})"


class FileDiff:
    def __init__(self, insertions=(), deletions=()):
        self.insertions = tuple(insertions)
        self.deletions = tuple(deletions)

    def is_empty(self):
        return not self.insertions and not self.deletions

    @property
    def inserted_line_count(self):
        return sum(len(element) for element in self.insertions)

    @property
    def deleted_line_count(self):
        return sum(len(element) for element in self.deletions)

    def apply(self, old_lines):
        """
        Rebuilds the new snapshot from `old_lines`.
        Inserted blocks sit at their anchor in the new file; every other slot takes
        the next old line that was not deleted.
        """
        deleted = set()
        for element in self.deletions:
            for line in element.lines:
                if line.position < 1 or line.position > len(old_lines):
                    raise CorruptRepository(f"deletion at line {line.position} is outside a {len(old_lines)}-line file")
                deleted.add(line.position)

        new_length = len(old_lines) - len(deleted) + self.inserted_line_count
        result = [None] * new_length
        for element in self.insertions:
            for offset, line in enumerate(element.lines):
                index = line.position - 1 + offset
                if index < 0 or index >= new_length or result[index] is not None:
                    raise CorruptRepository(f"insertion at line {line.position} does not fit the file")
                result[index] = line.text

        survivors = iter(text for number, text in enumerate(old_lines, 1) if number not in deleted)
        for index, text in enumerate(result):
            if text is None:
                result[index] = next(survivors)
        return result

    def __eq__(self, other):
        if not isinstance(other, FileDiff):
            return NotImplemented
        return self.insertions == other.insertions and self.deletions == other.deletions

    def __repr__(self):
        return f"FileDiff(insertions={len(self.insertions)}, deletions={len(self.deletions)})"


class DiffBuilder:
    """
    Accumulates changed-line observations into runs.

    Deletions are numbered over the old file, so a run continues while each
    position is one past the last. Insertions carry the anchor of their block in
    the new file, so a run continues while the position stays the same.
    """

    def __init__(self):
        self._reset()

    def _reset(self):
        self._pending = {INSERTION: [], DELETION: []}
        self._last = {INSERTION: None, DELETION: None}
        self._sealed = {INSERTION: [], DELETION: []}

    def _extends_run(self, kind, position):
        last = self._last[kind]
        if kind == INSERTION:
            return position == last
        return position == last + 1

    def _register(self, kind, position, text):
        pending = self._pending[kind]
        if pending and not self._extends_run(kind, position):
            self._sealed[kind].append(DiffElement(kind, pending))
            pending = self._pending[kind] = []
        self._last[kind] = position
        pending.append(Line(position, text))

    def register_deleted(self, position, text):
        self._register(DELETION, position, text)

    def register_inserted(self, position, text):
        self._register(INSERTION, position, text)

    def build(self):
        for kind in (DELETION, INSERTION):
            if self._pending[kind]:
                self._sealed[kind].append(DiffElement(kind, self._pending[kind]))
        diff = FileDiff(self._sealed[INSERTION], self._sealed[DELETION])
        self._reset()
        return diff


def compare_lines(old_lines, new_lines):
    # One linear pass over the opcodes; deletions by old position, insertions by their block's anchor in the new file
    builder = DiffBuilder()
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ('delete', 'replace'):
            for i in range(i1, i2):
                builder.register_deleted(i + 1, old_lines[i])
        if tag in ('insert', 'replace'):
            for j in range(j1, j2):
                builder.register_inserted(j1 + 1, new_lines[j])
    return builder.build()


def compare_files(old_path, new_path):
    return compare_lines(read_lines(old_path), read_lines(new_path))


def format_file_diff(diff): # Header with element counts, then each element as '<kind> <start> <count>' followed by its text
    lines = [f"insertions={len(diff.insertions)} deletions={len(diff.deletions)}"]
    for element in diff.insertions + diff.deletions:
        lines.append(f"{element.kind} {element.start} {len(element)}")
        lines.extend(line.text for line in element.lines)
    return lines


def _parse_count(token, prefix):
    if not token.startswith(prefix):
        raise CorruptRepository(f"expected '{prefix}' in diff header")
    value = token[len(prefix):]
    if not value.isdigit():
        raise CorruptRepository(f"bad count {value!r} in diff header")
    return int(value)


def parse_file_diff(lines):
    if not lines:
        raise CorruptRepository("empty diff")
    header = lines[0].split(' ')
    if len(header) != 2:
        raise CorruptRepository(f"bad diff header: {lines[0]!r}")
    expected = {
        INSERTION: _parse_count(header[0], 'insertions='),
        DELETION: _parse_count(header[1], 'deletions='),
    }

    elements = {INSERTION: [], DELETION: []}
    index = 1
    while index < len(lines):
        parts = lines[index].split(' ')
        if len(parts) != 3 or parts[0] not in (INSERTION, DELETION) \
                or not parts[1].isdigit() or not parts[2].isdigit():
            raise CorruptRepository(f"bad diff element header: {lines[index]!r}")
        kind, start, count = parts[0], int(parts[1]), int(parts[2])
        if start < 1 or count < 1 or index + count >= len(lines):
            raise CorruptRepository(f"diff element at line {index + 1} is truncated or empty")
        if kind == INSERTION and elements[DELETION]:
            raise CorruptRepository("insertion elements must come before deletion elements")
        texts = lines[index + 1:index + 1 + count]
        if kind == INSERTION:
            element_lines = [Line(start, text) for text in texts]
        else:
            element_lines = [Line(start + offset, text) for offset, text in enumerate(texts)]
        elements[kind].append(DiffElement(kind, element_lines))
        index += 1 + count

    for kind in (INSERTION, DELETION):
        if len(elements[kind]) != expected[kind]:
            raise CorruptRepository("diff element counts do not match the header")
    return FileDiff(elements[INSERTION], elements[DELETION])
