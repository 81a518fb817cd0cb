# What it does: The in-memory truth for one kil repository. Tracks which files are followed or pending, drives the commit workflow, guards branch operations behind a clean working tree, and saves/loads everything under `.kil`
# How it does: The last committed version of a tracked file is rebuilt from the snapshot stored by the commit that added it plus every later diff along the parent chain, and compared with the working copy. A commit works on a deep copy taken beforehand so any I/O failure can put the model back exactly as it was. Loading parses every file first and only adopts the result when all of it checks out
# What data structure it uses: List (ordered tracked and pending paths), Set (branch names), Dictionary (path -> FileDiff for modifications), and the CommitTree DAG

import copy
import os
from collections import namedtuple

from . import config, objects, repository
from .diff import compare_lines
from .errors import CorruptRepository, DirtyWorkingTree, InvalidBranchName, InvalidHashFormat, IOFailure, \
    NothingToCommit, NotInitialized, PathOutsideRepository, RepositoryExists, UnknownBranch
from .filesystem import create_directory, exists, is_file, read_lines, write_lines
from .logger import get_logger
from .objects import CommitHash, CommitRecord, HashAllocator
from .tree import CommitTree

logger = get_logger(__name__)

Summary = namedtuple('Summary', ['project_name', 'current_branch', 'has_committed', 'current_commit', 'last_hash'])


class ChangeSet:
    def __init__(self, added=None, removed=None, modified=None):
        self.added = list(added or [])
        self.removed = list(removed or [])
        self.modified = dict(modified or {})

    def is_empty(self):
        return not self.added and not self.removed and not self.modified


def _summary_value(lines, index, key):
    prefix = f"{key}="
    if index >= len(lines) or not lines[index].startswith(prefix):
        raise CorruptRepository(f"summary is missing '{key}'")
    return lines[index][len(prefix):]


def parse_summary(lines):
    """
    Parses the `.kil/info` summary. The first three lines are always present; the
    current commit and last issued hash follow only once something was committed.
    """
    project_name = _summary_value(lines, 0, 'projName')
    current_branch = _summary_value(lines, 1, 'curBranch')
    initial_commit = _summary_value(lines, 2, 'initialCommit')
    if not project_name or not current_branch:
        raise CorruptRepository("summary has an empty project name or branch")
    if initial_commit not in ('true', 'false'):
        raise CorruptRepository(f"bad initialCommit value {initial_commit!r}")

    if initial_commit == 'false':
        if len(lines) != 3:
            raise CorruptRepository("summary has commit details but no commit was made")
        return Summary(project_name, current_branch, False, None, None)

    if len(lines) != 5:
        raise CorruptRepository("summary is missing the commit details")
    try:
        current_commit = CommitHash.parse(_summary_value(lines, 3, 'curCommit'))
        last_hash = CommitHash.parse(_summary_value(lines, 4, 'lastHash'))
    except InvalidHashFormat as e:
        raise CorruptRepository(str(e)) from e
    if current_commit > last_hash:
        raise CorruptRepository("current commit is newer than the last issued hash")
    return Summary(project_name, current_branch, True, current_commit, last_hash)


def format_summary(project_name, current_branch, current_commit, last_hash):
    lines = [
        f"projName={project_name}",
        f"curBranch={current_branch}",
        f"initialCommit={'true' if current_commit is not None else 'false'}",
    ]
    if current_commit is not None:
        lines.append(f"curCommit={current_commit}")
        lines.append(f"lastHash={last_hash}")
    return lines


def _check_path_list(name, paths):
    if any(not path for path in paths) or len(set(paths)) != len(paths):
        raise CorruptRepository(f"{name} list has empty or duplicate entries")
    return paths


class RepositoryState:
    def __init__(self, repo_root, allocator=None):
        self.repo_root = repo_root
        self.allocator = allocator if allocator is not None else HashAllocator()
        self.initialized = False
        self.project_name = None
        self.current_branch = None
        self.branches = set()
        self.tracked_files = []
        self.added_files = []
        self.has_committed = False
        self.current_commit = None
        self.tree = None

    def _kil_file(self, name):
        return repository.kil_path(self.repo_root, name)

    def _working(self, path):
        return repository.working_path(self.repo_root, path)

    def _require_initialized(self):
        if not self.initialized:
            raise NotInitialized()

    # Project setup and persistence

    def initialize_project(self, project_name, branch_name=config.DEFAULT_BRANCH):
        kil_dir = repository.kil_path(self.repo_root)
        if exists(kil_dir):
            raise RepositoryExists(f"a kil repository already exists in {kil_dir}")
        _check_branch_name(branch_name)

        create_directory(kil_dir)
        create_directory(repository.commits_path(self.repo_root))

        self.project_name = project_name
        self.current_branch = branch_name
        self.branches = {branch_name}
        self.tree = CommitTree.initialize(branch_name)
        self.initialized = True
        self.save()
        logger.debug("initialized project %s on branch %s", project_name, branch_name)

    def save(self):
        self._require_initialized()
        last_hash = self.allocator.latest_issued() if self.has_committed else None
        write_lines(self._kil_file(repository.TRACKED_FILE), self.tracked_files)
        write_lines(self._kil_file(repository.ADDED_FILE), self.added_files)
        write_lines(self._kil_file(repository.BRANCHES_FILE), sorted(self.branches))
        write_lines(self._kil_file(repository.TREE_FILE), self.tree.serialize())
        write_lines(self._kil_file(repository.INFO_FILE),
                    format_summary(self.project_name, self.current_branch, self.current_commit, last_hash))

    def _read_required(self, name):
        path = self._kil_file(name)
        if not is_file(path):
            raise CorruptRepository(f"{path} is missing")
        try:
            return read_lines(path)
        except IOFailure as e:
            raise CorruptRepository(str(e)) from e

    def initialize(self):
        """
        Loads the repository from `.kil`.

        Returns False when there is no repository here yet and True once the whole
        state is loaded. Raises CorruptRepository (or one of its subclasses) if any
        part is missing or inconsistent; in that case nothing is adopted.
        """
        if not exists(repository.kil_path(self.repo_root)):
            return False

        summary = parse_summary(self._read_required(repository.INFO_FILE))

        restored = CommitTree.restore(
            self._read_required(repository.TREE_FILE),
            summary.current_branch,
            summary.current_commit,
            load_record=lambda commit_hash: objects.read_commit(self.repo_root, commit_hash),
            has_record=lambda commit_hash: objects.commit_exists(self.repo_root, commit_hash),
        )
        if restored.error is not None:
            if isinstance(restored.error, CorruptRepository):
                raise restored.error
            raise CorruptRepository(str(restored.error)) from restored.error
        tree = restored.tree

        tracked_files = _check_path_list('tracked', self._read_required(repository.TRACKED_FILE))
        added_files = _check_path_list('added', self._read_required(repository.ADDED_FILE))
        if set(tracked_files) & set(added_files):
            raise CorruptRepository("a file is both tracked and pending")

        branches = set(self._read_required(repository.BRANCHES_FILE))
        if branches != tree.branches:
            raise CorruptRepository("branch list does not match the commit tree")

        if summary.has_committed != (tree.root is not None):
            raise CorruptRepository("summary and commit tree disagree on whether anything was committed")
        if tree.records and max(tree.records) > summary.last_hash:
            raise CorruptRepository("the commit tree holds hashes newer than the last issued one")
        if tracked_files and not summary.has_committed:
            raise CorruptRepository("files are tracked but nothing was committed")

        self.project_name = summary.project_name
        self.current_branch = summary.current_branch
        self.has_committed = summary.has_committed
        self.current_commit = summary.current_commit
        self.tree = tree
        self.tracked_files = tracked_files
        self.added_files = added_files
        self.branches = branches
        if summary.has_committed:
            self.allocator.seed(str(summary.last_hash))
        self.initialized = True
        logger.debug("loaded %s: branch %s, commit %s, %d tracked, %d pending", self.project_name,
                     self.current_branch, self.current_commit, len(tracked_files), len(added_files))
        return True

    # Working set

    def track(self, path): # True when the path was newly marked for the next commit
        """
        Relative paths are taken from the repository root. Raises
        PathOutsideRepository for anything that does not resolve to a path
        inside the working tree (outside the root, or inside .kil).
        """
        self._require_initialized()
        rel_path = repository.normalize_path(self.repo_root, os.path.join(self.repo_root, path))
        if rel_path is None:
            raise PathOutsideRepository(path)
        path = rel_path
        if path in self.tracked_files or path in self.added_files:
            return False
        self.added_files.append(path)
        return True

    def committed_lines(self, path):
        """
        Rebuilds `path` as of the current commit: the snapshot stored by the
        nearest ancestor that added it, with every later diff applied in order.
        """
        if self.current_commit is None:
            raise CorruptRepository(f"'{path}' is tracked but nothing was committed")
        chain = self.tree.history(self.current_commit)
        for index, record in enumerate(chain):
            if path in record.added_files:
                break
        else:
            raise CorruptRepository(f"no commit in the history added '{path}'")

        lines = objects.read_snapshot(self.repo_root, record.hash, path)
        for newer in reversed(chain[:index]):
            diff = newer.diffs.get(path)
            if diff is not None:
                lines = diff.apply(lines)
        return lines

    def _verified_adds(self): # Pending files deleted since they were added are dropped silently
        return [path for path in self.added_files if is_file(self._working(path))]

    def _removals_and_diffs(self):
        removed = []
        modified = {}
        for path in self.tracked_files:
            working = self._working(path)
            if not is_file(working):
                removed.append(path)
                continue
            diff = compare_lines(self.committed_lines(path), read_lines(working))
            if not diff.is_empty():
                modified[path] = diff
        return removed, modified

    def compute_changes(self, include_adds=True):
        self._require_initialized()
        added = self._verified_adds() if include_adds else []
        removed, modified = self._removals_and_diffs()
        return ChangeSet(added, removed, modified)

    def status(self):
        return self.compute_changes(include_adds=True)

    def is_clean(self):
        self._require_initialized()
        if self._verified_adds():
            return False
        removed, modified = self._removals_and_diffs()
        return not removed and not modified

    # Commits

    def _snapshot(self):
        return copy.deepcopy({
            'tracked_files': self.tracked_files,
            'added_files': self.added_files,
            'branches': self.branches,
            'current_branch': self.current_branch,
            'current_commit': self.current_commit,
            'has_committed': self.has_committed,
            'tree': self.tree,
        }), self.allocator.checkpoint()

    def _restore(self, snapshot):
        fields, checkpoint = snapshot
        for name, value in fields.items():
            setattr(self, name, value)
        self.allocator.rollback(checkpoint)

    def _drop_removed(self, removed_files):
        for path in removed_files:
            if path in self.tracked_files:
                self.tracked_files.remove(path)
            if path in self.added_files:
                self.added_files.remove(path)

    def commit(self, message, include_adds=False):
        """
        Records the current changes as a new commit on the current branch.

        Raises NothingToCommit when there is nothing to record. On an IOFailure the
        in-memory state is rolled back, the partial commit is removed, and the
        error is raised again.
        """
        self._require_initialized()
        changes = self.compute_changes(include_adds)
        if changes.is_empty():
            raise NothingToCommit()
        author = config.get_user_name(self.repo_root)

        before = self._snapshot()
        commit_hash = self.allocator.allocate()
        record = CommitRecord(commit_hash, message, self.current_branch,
                              parent=self.current_commit,
                              added_files=changes.added,
                              removed_files=changes.removed,
                              diffs=changes.modified,
                              author=author)

        parent_rewritten = False
        try:
            snapshots = {path: read_lines(self._working(path)) for path in changes.added}
            objects.write_commit(self.repo_root, record, snapshots)

            parent = self.tree.add_commit(record)
            if parent is not None:
                parent_rewritten = True
                objects.write_record(self.repo_root, parent)

            self._drop_removed(changes.removed)
            if include_adds:
                self.tracked_files.extend(changes.added)
                self.added_files = []
            self.current_commit = commit_hash
            self.has_committed = True
            self.save()
        except IOFailure:
            self._rollback(before, commit_hash, parent_rewritten)
            raise

        logger.debug("committed %s on %s", commit_hash, self.current_branch)
        return record

    def _rollback(self, before, commit_hash, parent_rewritten):
        self._restore(before)
        logger.warning("commit %s failed, rolling back", commit_hash)
        try:
            objects.remove_commit(self.repo_root, commit_hash)
        except IOFailure as e:
            logger.warning("could not remove partial commit %s: %s", commit_hash, e)
        if parent_rewritten:
            try:
                objects.write_record(self.repo_root, self.tree.get(self.current_commit))
            except IOFailure as e:
                logger.warning("could not restore record %s: %s", self.current_commit, e)
        try:
            self.save()
        except IOFailure as e:
            logger.warning("could not restore saved state: %s", e)

    def log(self): # Records from the current commit back to the root
        self._require_initialized()
        if self.current_commit is None:
            return []
        return self.tree.history(self.current_commit)

    # Branches

    def create_branch(self, branch_name):
        self._require_initialized()
        _check_branch_name(branch_name)
        if not self.is_clean():
            raise DirtyWorkingTree("Please commit your changes before creating a new branch.")
        self.tree.register_new_branch(branch_name)
        self.tree.switch(branch_name)
        self.branches.add(branch_name)
        self.current_branch = branch_name

    def switch_branch(self, branch_name):
        """
        Moves the current-branch pointer. Working files are left as they are and
        the current commit does not move.
        """
        self._require_initialized()
        if branch_name not in self.branches:
            raise UnknownBranch(branch_name)
        if not self.is_clean():
            raise DirtyWorkingTree()
        self.tree.switch(branch_name)
        self.current_branch = branch_name


def _check_branch_name(branch_name):
    if not branch_name or any(c.isspace() for c in branch_name):
        raise InvalidBranchName(branch_name)


def open_state(path='.'):
    """
    Finds the repository containing `path` and loads it.
    Raises NotInitialized outside a repository and CorruptRepository if the saved
    state cannot be trusted.
    """
    repo_root = repository.find_repo_root(path)
    if not repo_root:
        raise NotInitialized()
    state = RepositoryState(repo_root)
    state.initialize()
    return state
