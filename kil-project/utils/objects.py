# What it does: Manages the commit object store: commit identifiers, the allocator that hands them out, the commit record and its text form, and the files kept under `.kil/commits/<hash>/`
# How it does: Hashes are sequence numbers issued by a HashAllocator that can be reseeded from saved state. Each commit gets its own directory holding the record, full snapshots of files it added and one diff file per modified file
# What data structure it uses: Hash Table / Dictionary (the store is keyed by commit hash, and a record maps paths to their FileDiff), List (ordered file lists and child hashes)

import functools
import json

from . import repository
from .diff import format_file_diff, parse_file_diff
from .errors import CorruptRepository, InvalidHashFormat, NoHashYetIssued
from .filesystem import (create_directories, create_directory, exists, read_lines, remove_tree,
                         split_into_directory_components, write_lines)
from .logger import get_logger

logger = get_logger(__name__)

HASH_WIDTH = 12
ROOT = 'ROOT'


@functools.total_ordering
class CommitHash:
    # Zero-padded decimal keeps string order equal to numeric order
    __slots__ = ('value',)

    def __init__(self, value):
        if not isinstance(value, int) or value < 1 or value >= 10 ** HASH_WIDTH:
            raise InvalidHashFormat(str(value))
        self.value = value

    @classmethod
    def parse(cls, text):
        if not isinstance(text, str) or len(text) != HASH_WIDTH or not (text.isascii() and text.isdigit()):
            raise InvalidHashFormat(text)
        return cls(int(text))

    def __str__(self):
        return f"{self.value:0{HASH_WIDTH}d}"

    def __repr__(self):
        return f"CommitHash({str(self)!r})"

    def __eq__(self, other):
        if not isinstance(other, CommitHash):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other):
        if not isinstance(other, CommitHash):
            return NotImplemented
        return self.value < other.value

    def __hash__(self):
        return hash(self.value)


class HashAllocator:
    """
    Issues strictly increasing commit hashes.

    Each repository owns one allocator. After a reload, seed() it with the last
    hash that was ever issued so new commits never collide with history.
    """

    def __init__(self):
        self._latest = None

    def allocate(self):
        value = self._latest.value + 1 if self._latest else 1
        self._latest = CommitHash(value)
        logger.debug("allocated commit hash %s", self._latest)
        return self._latest

    def latest_issued(self):
        if self._latest is None:
            raise NoHashYetIssued()
        return self._latest

    def checkpoint(self): # Opaque marker for rollback()
        return self._latest

    def rollback(self, checkpoint):
        self._latest = checkpoint

    def seed(self, serialized):
        seeded = CommitHash.parse(serialized)
        if self._latest is None or seeded > self._latest:
            self._latest = seeded
        return seeded


class CommitRecord:
    def __init__(self, commit_hash, message, branch, parent=None, children=None,
                 added_files=None, removed_files=None, diffs=None, author='anonymous'):
        self.hash = commit_hash
        self.message = message
        self.branch = branch
        self.parent = parent  # None means ROOT
        self.children = list(children or [])
        self.added_files = list(added_files or [])
        self.removed_files = list(removed_files or [])
        self.diffs = dict(diffs or {})
        self.author = author

    @property
    def is_root(self):
        return self.parent is None

    def __eq__(self, other):
        if not isinstance(other, CommitRecord):
            return NotImplemented
        return (self.hash, self.message, self.branch, self.parent, self.children,
                self.added_files, self.removed_files, self.diffs, self.author) == \
            (other.hash, other.message, other.branch, other.parent, other.children,
             other.added_files, other.removed_files, other.diffs, other.author)

    def __repr__(self):
        return f"CommitRecord({self.hash}, branch={self.branch!r}, parent={self.parent})"


def format_record(record): # The record as text lines; diffs themselves live in separate files, only their paths are listed here
    lines = [
        f"commitHash={record.hash}",
        f"commitMessage={json.dumps(record.message)}",
        f"author={record.author}",
        f"branch={record.branch}",
        f"parentCommit={record.parent if record.parent is not None else ROOT}",
        f"childCommits=[{','.join(str(child) for child in record.children)}]",
    ]
    for key, paths in (('addedFiles', record.added_files),
                       ('removedFiles', record.removed_files),
                       ('diffs', list(record.diffs))):
        lines.append(f"{key} [{len(paths)}]")
        lines.extend(paths)
    return lines


def _field(lines, index, key):
    prefix = f"{key}="
    if index >= len(lines) or not lines[index].startswith(prefix):
        raise CorruptRepository(f"commit record is missing '{key}'")
    return lines[index][len(prefix):]


def _path_list(lines, index, key): # Reads a 'key [n]' header and the n paths after it; returns the paths and the next index
    prefix = f"{key} ["
    header = lines[index] if index < len(lines) else ''
    if not header.startswith(prefix) or not header.endswith(']'):
        raise CorruptRepository(f"commit record is missing '{key}'")
    count = header[len(prefix):-1]
    if not count.isdigit():
        raise CorruptRepository(f"bad count in '{header}'")
    count = int(count)
    paths = lines[index + 1:index + 1 + count]
    if len(paths) != count:
        raise CorruptRepository(f"commit record lists fewer {key} than announced")
    return paths, index + 1 + count


def _parse_hash(text):
    try:
        return CommitHash.parse(text)
    except InvalidHashFormat as e:
        raise CorruptRepository(str(e)) from e


def parse_record(lines):
    """
    Parses a commit record written by format_record().
    The returned record's `diffs` maps each listed path to None until the diff
    files are loaded (read_commit does that).
    """
    commit_hash = _parse_hash(_field(lines, 0, 'commitHash'))

    try:
        message = json.loads(_field(lines, 1, 'commitMessage'))
    except json.JSONDecodeError as e:
        raise CorruptRepository(f"bad commit message in record {commit_hash}") from e
    if not isinstance(message, str):
        raise CorruptRepository(f"bad commit message in record {commit_hash}")

    author = _field(lines, 2, 'author')
    branch = _field(lines, 3, 'branch')
    if not branch:
        raise CorruptRepository(f"record {commit_hash} has no branch")

    parent_text = _field(lines, 4, 'parentCommit')
    parent = None if parent_text == ROOT else _parse_hash(parent_text)

    children_text = _field(lines, 5, 'childCommits')
    if not children_text.startswith('[') or not children_text.endswith(']'):
        raise CorruptRepository(f"bad child list in record {commit_hash}")
    children_text = children_text[1:-1]
    children = [_parse_hash(child) for child in children_text.split(',')] if children_text else []

    added_files, index = _path_list(lines, 6, 'addedFiles')
    removed_files, index = _path_list(lines, index, 'removedFiles')
    diff_paths, index = _path_list(lines, index, 'diffs')
    if index != len(lines):
        raise CorruptRepository(f"unexpected trailing lines in record {commit_hash}")

    return CommitRecord(commit_hash, message, branch, parent, children, added_files, removed_files,
                        {path: None for path in diff_paths}, author)


def commit_exists(repo_root, commit_hash):
    return exists(repository.commit_record_path(repo_root, commit_hash))


def write_record(repo_root, record):
    write_lines(repository.commit_record_path(repo_root, record.hash), format_record(record))


def write_commit(repo_root, record, snapshots):
    """
    Writes a new commit: snapshots of the added files, one diff file per modified
    file, then the record itself. `snapshots` maps added paths to their lines.
    """
    directory = repository.commit_dir(repo_root, record.hash)
    create_directory(directory)

    for path, lines in snapshots.items():
        create_directories(directory, [repository.SNAPSHOT_DIR] + split_into_directory_components(path))
        write_lines(repository.snapshot_path(repo_root, record.hash, path), lines)

    for path, diff in record.diffs.items():
        create_directories(directory, [repository.DIFF_DIR] + split_into_directory_components(path))
        write_lines(repository.diff_path(repo_root, record.hash, path), format_file_diff(diff))

    # The record goes last: a directory without one is an unfinished commit
    write_record(repo_root, record)
    logger.debug("wrote commit %s (%d added, %d removed, %d modified)", record.hash,
                 len(record.added_files), len(record.removed_files), len(record.diffs))


def read_commit(repo_root, commit_hash): # Loads a record together with all of its diffs
    record = parse_record(read_lines(repository.commit_record_path(repo_root, commit_hash)))
    if record.hash != commit_hash:
        raise CorruptRepository(f"record stored under {commit_hash} claims to be {record.hash}")
    for path in record.diffs:
        record.diffs[path] = parse_file_diff(read_lines(repository.diff_path(repo_root, commit_hash, path)))
    return record


def read_snapshot(repo_root, commit_hash, path):
    return read_lines(repository.snapshot_path(repo_root, commit_hash, path))


def remove_commit(repo_root, commit_hash):
    remove_tree(repository.commit_dir(repo_root, commit_hash))
