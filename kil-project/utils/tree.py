# What it does: Holds the commit history as a branch-labelled DAG: which commits exist, how they link, and which commit each branch points at
# How it does: Records live in one dictionary keyed by hash and edges are stored as hashes on the records (parent, children), never as object links. The tree file only stores the root and the branch heads; on load the DAG is rebuilt by walking `children` from the root through the stored records and is validated once
# What data structure it uses: Directed Acyclic Graph (DAG) over a Hash Table of records, plus a Dictionary from branch name to head hash. Restoring uses a Queue for a breadth-first walk

from collections import deque, namedtuple

from .errors import CorruptRepository, CorruptTreeFormat, DanglingBranchReference, DuplicateBranch, IOFailure, \
    InvalidHashFormat, UnknownBranch
from .logger import get_logger
from .objects import CommitHash

logger = get_logger(__name__)

NO_COMMIT = 'NONE'

TreeRestore = namedtuple('TreeRestore', ['tree', 'error'])


class CommitTree:
    def __init__(self):
        self.records = {}  # CommitHash -> CommitRecord
        self.heads = {}  # branch name -> CommitHash, or None before the branch has commits
        self.root = None
        self.current_branch = None

    @classmethod
    def initialize(cls, branch_name): # A new tree has a single branch with no commits yet
        tree = cls()
        tree.heads[branch_name] = None
        tree.current_branch = branch_name
        return tree

    @property
    def branches(self):
        return set(self.heads)

    def head(self, branch_name=None):
        branch_name = branch_name or self.current_branch
        if branch_name not in self.heads:
            raise UnknownBranch(branch_name)
        return self.heads[branch_name]

    def get(self, commit_hash):
        return self.records[commit_hash]

    def __contains__(self, commit_hash):
        return commit_hash in self.records

    def register_new_branch(self, branch_name): # Fork: the new branch starts at the current branch's head
        if branch_name in self.heads:
            raise DuplicateBranch(branch_name)
        self.heads[branch_name] = self.heads[self.current_branch]
        logger.debug("branch %s forked from %s at %s", branch_name, self.current_branch, self.heads[branch_name])

    def switch(self, branch_name):
        if branch_name not in self.heads:
            raise UnknownBranch(branch_name)
        self.current_branch = branch_name

    def add_commit(self, record):
        """
        Appends `record` to the current branch and returns its parent record, whose
        `children` now include the new hash (None for the very first commit).
        """
        if record.hash in self.records:
            raise ValueError(f"commit {record.hash} is already in the tree")

        parent = None
        if record.parent is not None:
            if record.parent not in self.records:
                raise ValueError(f"parent commit {record.parent} is not in the tree")
            parent = self.records[record.parent]
        elif self.root is not None:
            raise ValueError("the tree already has a root commit")

        self.records[record.hash] = record
        if parent is None:
            self.root = record.hash
        else:
            parent.children.append(record.hash)
        self.heads[self.current_branch] = record.hash
        return parent

    def history(self, start=None):
        """
        Walks from `start` (default: the current branch's head) back to the root
        along parent links and returns the records newest first.
        """
        current = start if start is not None else self.heads.get(self.current_branch)
        records = []
        while current is not None:
            record = self.records[current]
            records.append(record)
            current = record.parent
        return records

    def serialize(self): # Only the root and the branch heads; edges are recovered from the stored records
        lines = [f"root {self.root if self.root is not None else NO_COMMIT}"]
        for branch_name in sorted(self.heads):
            head = self.heads[branch_name]
            lines.append(f"branch {head if head is not None else NO_COMMIT} {branch_name}")
        return lines

    @classmethod
    def restore(cls, lines, current_branch, current_commit, load_record, has_record):
        """
        Rebuilds a tree from serialize() output.

        `load_record(hash)` returns a stored CommitRecord and `has_record(hash)`
        says whether one exists. Returns TreeRestore(tree, None) on success or
        TreeRestore(None, error) when the tree cannot be trusted; nothing is raised
        for bad input because a broken tree only means the repository is unusable.
        """
        try:
            tree = cls._restore(lines, current_branch, current_commit, load_record, has_record)
        except (CorruptRepository, IOFailure) as e:
            logger.debug("tree restore failed: %s", e)
            return TreeRestore(None, e)
        return TreeRestore(tree, None)

    @classmethod
    def _restore(cls, lines, current_branch, current_commit, load_record, has_record):
        if not lines:
            raise CorruptTreeFormat("tree file is empty")

        root_parts = lines[0].split(' ')
        if len(root_parts) != 2 or root_parts[0] != 'root':
            raise CorruptTreeFormat(f"bad root line: {lines[0]!r}")
        root = _parse_optional_hash(root_parts[1])

        heads = {}
        for line in lines[1:]:
            parts = line.split(' ', 2)
            if len(parts) != 3 or parts[0] != 'branch' or not parts[2]:
                raise CorruptTreeFormat(f"bad branch line: {line!r}")
            if parts[2] in heads:
                raise CorruptTreeFormat(f"branch {parts[2]!r} is listed twice")
            heads[parts[2]] = _parse_optional_hash(parts[1])

        if not heads:
            raise CorruptTreeFormat("tree has no branches")
        if current_branch not in heads:
            raise CorruptTreeFormat(f"current branch {current_branch!r} is not in the tree")

        for branch_name, head in heads.items():
            if head is not None and not has_record(head):
                raise DanglingBranchReference(f"branch {branch_name!r} points to missing commit {head}")
        if current_commit is not None and not has_record(current_commit):
            raise DanglingBranchReference(f"current commit {current_commit} has no record")

        records = {}
        if root is not None:
            if not has_record(root):
                raise DanglingBranchReference(f"root commit {root} has no record")
            queue = deque([root])
            while queue:
                commit_hash = queue.popleft()
                record = load_record(commit_hash)
                if commit_hash == root and record.parent is not None:
                    raise CorruptTreeFormat(f"root commit {root} has a parent")
                records[commit_hash] = record
                for child in record.children:
                    if child in records or child in queue:
                        raise CorruptTreeFormat(f"commit {child} is reachable twice")
                    if not has_record(child):
                        raise CorruptTreeFormat(f"child commit {child} of {commit_hash} has no record")
                    queue.append(child)
            for record in records.values():
                if record.parent is not None and not _linked_to_parent(records, record):
                    raise CorruptTreeFormat(f"commit {record.hash} is not listed as a child of {record.parent}")

        for branch_name, head in heads.items():
            if head is not None and head not in records:
                raise DanglingBranchReference(f"branch {branch_name!r} points to {head}, which is not in the history")
        if current_commit is not None and current_commit not in records:
            raise DanglingBranchReference(f"current commit {current_commit} is not in the history")

        tree = cls()
        tree.records = records
        tree.heads = heads
        tree.root = root
        tree.current_branch = current_branch
        logger.debug("restored tree with %d commits and %d branches", len(records), len(heads))
        return tree


def _linked_to_parent(records, record):
    parent = records.get(record.parent)
    return parent is not None and record.hash in parent.children


def _parse_optional_hash(text):
    if text == NO_COMMIT:
        return None
    try:
        return CommitHash.parse(text)
    except InvalidHashFormat as e:
        raise CorruptTreeFormat(str(e)) from e
