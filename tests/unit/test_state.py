# Unit tests for utils/state.py

import pytest
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'kil-project'))

from conftest import reload, write_file
from utils import config, objects, repository, state as state_module
from utils.errors import (CorruptRepository, DanglingBranchReference, DirtyWorkingTree, DuplicateBranch,
                          InvalidBranchName, IOFailure, NothingToCommit, NotInitialized, PathOutsideRepository,
                          RepositoryExists, UnknownBranch)
from utils.objects import CommitHash, HashAllocator
from utils.state import RepositoryState, format_summary, open_state, parse_summary


def _read(repo_root, name):
    with open(repository.kil_path(repo_root, name)) as f:
        return f.read()


class TestSetup:
    # Tests for initialize_project() / initialize()

    def test_fresh_directory_is_not_a_repository(self, temp_dir):
        assert RepositoryState(temp_dir).initialize() is False

    def test_initialize_project_writes_state(self, temp_repo):
        assert _read(temp_repo, repository.INFO_FILE) == 'projName=demo\ncurBranch=Master\ninitialCommit=false\n'
        assert _read(temp_repo, repository.TREE_FILE) == 'root NONE\nbranch NONE Master\n'
        assert _read(temp_repo, repository.BRANCHES_FILE) == 'Master\n'
        assert _read(temp_repo, repository.TRACKED_FILE) == ''
        assert os.path.isdir(repository.commits_path(temp_repo))

    def test_loaded_state(self, state):
        assert state.initialized
        assert state.project_name == 'demo'
        assert state.current_branch == 'Master'
        assert state.branches == {'Master'}
        assert state.current_commit is None
        assert not state.has_committed

    def test_repository_exists(self, temp_repo):
        with pytest.raises(RepositoryExists):
            RepositoryState(temp_repo).initialize_project('again')

    def test_custom_first_branch(self, temp_dir):
        RepositoryState(temp_dir).initialize_project('demo', 'main')
        loaded = RepositoryState(temp_dir)
        assert loaded.initialize()
        assert loaded.branches == {'main'}

    def test_operations_require_initialization(self, temp_dir):
        fresh = RepositoryState(temp_dir)
        with pytest.raises(NotInitialized):
            fresh.track('a.txt')
        with pytest.raises(NotInitialized):
            fresh.commit('msg')
        with pytest.raises(NotInitialized):
            fresh.create_branch('feature')

    def test_open_state_outside_repository(self, temp_dir):
        with pytest.raises(NotInitialized):
            open_state(temp_dir)

    def test_open_state_from_subdirectory(self, temp_repo):
        subdir = os.path.join(temp_repo, 'src')
        os.makedirs(subdir)
        loaded = open_state(subdir)
        assert os.path.realpath(loaded.repo_root) == os.path.realpath(temp_repo)


class TestTrack:
    # Tests for RepositoryState.track()

    def test_track_marks_pending(self, state):
        assert state.track('a.txt') is True
        assert state.added_files == ['a.txt']
        assert state.tracked_files == []

    def test_track_is_idempotent(self, state):
        state.track('a.txt')
        assert state.track('./a.txt') is False
        assert state.added_files == ['a.txt']

    def test_already_tracked_file(self, repo_with_commit):
        state, _ = repo_with_commit
        assert state.track('a.txt') is False
        assert state.added_files == []

    def test_absolute_path_inside_repository(self, state):
        path = write_file(state.repo_root, os.path.join('src', 'mod.py'), 'x = 1\n')
        assert state.track(path) is True
        assert state.added_files == [os.path.join('src', 'mod.py')]

    def test_relative_paths_start_at_repository_root(self, state):
        os.makedirs(os.path.join(state.repo_root, 'src'))
        os.chdir(os.path.join(state.repo_root, 'src'))
        state.track(os.path.join('src', 'mod.py'))
        assert state.added_files == [os.path.join('src', 'mod.py')]

    @pytest.mark.parametrize('path', [
        os.path.join('..', 'escape.txt'),
        os.path.join('sub', '..', '..', 'escape.txt'),
        os.path.join('.kil', 'info'),
        '.',
    ])
    def test_rejects_paths_outside_working_tree(self, state, path):
        with pytest.raises(PathOutsideRepository):
            state.track(path)
        assert state.added_files == []

    def test_rejects_absolute_path_outside_repository(self, state):
        outside = os.path.join(os.path.dirname(state.repo_root), 'victim.txt')
        with pytest.raises(PathOutsideRepository):
            state.track(outside)
        assert state.added_files == []

    def test_absolute_path_edits_are_detected(self, state):
        path = write_file(state.repo_root, 'a.txt', 'one\n')
        state.track(path)
        record = state.commit('Add a', include_adds=True)
        assert os.path.isfile(repository.snapshot_path(state.repo_root, record.hash, 'a.txt'))

        write_file(state.repo_root, 'a.txt', 'one\ntwo\n')
        assert state.commit('Edit a').diffs['a.txt'].inserted_line_count == 1


class TestCommit:
    # Tests for RepositoryState.commit()

    def test_first_commit_is_root(self, repo_with_commit):
        state, record = repo_with_commit

        assert record.hash == CommitHash(1)
        assert record.parent is None
        assert record.children == []
        assert record.added_files == ['a.txt']
        assert state.current_commit == record.hash
        assert state.tracked_files == ['a.txt']
        assert state.added_files == []
        assert state.tree.head() == record.hash
        assert objects.read_snapshot(state.repo_root, record.hash, 'a.txt') == ['one', 'two', 'three']

    def test_second_commit_links_to_first(self, repo_with_commit):
        state, first = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'one\n2\nthree\n')
        second = state.commit('Second')

        assert second.parent == first.hash
        assert state.tree.get(first.hash).children == [second.hash]
        # The parent record on disk is rewritten with the new child
        assert objects.read_commit(state.repo_root, first.hash).children == [second.hash]
        assert list(second.diffs) == ['a.txt']
        assert second.diffs['a.txt'].inserted_line_count == 1
        assert second.diffs['a.txt'].deleted_line_count == 1

    def test_nothing_to_commit(self, repo_with_commit):
        state, record = repo_with_commit
        before = _read(state.repo_root, repository.INFO_FILE)

        with pytest.raises(NothingToCommit):
            state.commit('Empty')

        assert state.current_commit == record.hash
        assert _read(state.repo_root, repository.INFO_FILE) == before
        # No hash was consumed
        write_file(state.repo_root, 'a.txt', 'changed\n')
        assert state.commit('Real').hash == CommitHash(2)

    def test_nothing_to_commit_on_empty_repository(self, state):
        with pytest.raises(NothingToCommit):
            state.commit('Empty', include_adds=True)

    def test_pending_adds_need_include_flag(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'b.txt', 'bee\n')
        state.track('b.txt')
        write_file(state.repo_root, 'a.txt', 'one\ntwo\nthree\nfour\n')

        record = state.commit('Only the modification')

        assert record.added_files == []
        assert state.added_files == ['b.txt']
        assert state.tracked_files == ['a.txt']

    def test_pending_add_deleted_before_commit_is_dropped(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'b.txt', 'bee\n')
        state.track('b.txt')
        os.remove(os.path.join(state.repo_root, 'b.txt'))
        write_file(state.repo_root, 'a.txt', 'one\n')

        record = state.commit('Shrink', include_adds=True)

        assert record.added_files == []
        assert state.added_files == []
        assert state.tracked_files == ['a.txt']

    def test_removed_file(self, repo_with_commit):
        state, _ = repo_with_commit
        os.remove(os.path.join(state.repo_root, 'a.txt'))

        assert state.status().removed == ['a.txt']
        record = state.commit('Remove a')

        assert record.removed_files == ['a.txt']
        assert record.diffs == {}
        assert state.tracked_files == []

    def test_author_comes_from_config(self, state):
        config.write_config(state.repo_root, 'user.name', 'Test User')
        write_file(state.repo_root, 'a.txt', 'x\n')
        state.track('a.txt')
        assert state.commit('First', include_adds=True).author == 'Test User'

    def test_nested_path_snapshot(self, state):
        path = os.path.join('src', 'pkg', 'mod.py')
        write_file(state.repo_root, path, 'x = 1\n')
        state.track(path)
        record = state.commit('Add module', include_adds=True)
        assert objects.read_snapshot(state.repo_root, record.hash, path) == ['x = 1']

    def test_log_is_newest_first(self, repo_with_commit):
        state, first = repo_with_commit
        assert state.log() == [first]
        write_file(state.repo_root, 'a.txt', 'changed\n')
        second = state.commit('Second')
        assert [record.hash for record in state.log()] == [second.hash, first.hash]

    def test_log_without_commits(self, state):
        assert state.log() == []


class TestCommittedLines:
    # Tests for rebuilding committed file contents from snapshots and diffs

    def test_snapshot_plus_diffs(self, repo_with_commit):
        state, _ = repo_with_commit
        versions = [
            'zero\none\ntwo\nthree\n',
            'zero\none\nthree\nfour\nfive\n',
            'five\n',
            'a\nb\nfive\nc\n',
        ]
        for number, content in enumerate(versions):
            write_file(state.repo_root, 'a.txt', content)
            state.commit(f"Version {number}")
            assert state.committed_lines('a.txt') == content.splitlines()

        assert reload(state).committed_lines('a.txt') == versions[-1].splitlines()

    def test_untouched_file_keeps_snapshot(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'b.txt', 'bee\n')
        state.track('b.txt')
        state.commit('Add b', include_adds=True)
        assert state.committed_lines('a.txt') == ['one', 'two', 'three']


class TestStatus:
    # Tests for status() / is_clean()

    def test_clean_after_commit(self, repo_with_commit):
        state, _ = repo_with_commit
        assert state.is_clean()
        assert state.status().is_empty()

    def test_reports_every_kind_of_change(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'one\ntwo\n')
        write_file(state.repo_root, 'b.txt', 'bee\n')
        state.track('b.txt')

        changes = state.status()

        assert changes.added == ['b.txt']
        assert list(changes.modified) == ['a.txt']
        assert changes.modified['a.txt'].deleted_line_count == 1
        assert changes.removed == []
        assert not state.is_clean()

    def test_status_writes_nothing(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'different\n')
        before = {name: _read(state.repo_root, name) for name in (repository.INFO_FILE, repository.TRACKED_FILE,
                                                                  repository.TREE_FILE)}
        state.status()
        after = {name: _read(state.repo_root, name) for name in before}
        assert before == after


class TestBranches:
    # Tests for create_branch() / switch_branch()

    def test_create_branch(self, repo_with_commit):
        state, record = repo_with_commit
        state.create_branch('feature')

        assert state.current_branch == 'feature'
        assert state.branches == {'Master', 'feature'}
        assert state.tree.head('feature') == record.hash

    def test_create_branch_with_dirty_tree(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')

        with pytest.raises(DirtyWorkingTree):
            state.create_branch('feature')
        assert state.branches == {'Master'}
        assert state.current_branch == 'Master'

    def test_create_branch_with_pending_add(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'b.txt', 'bee\n')
        state.track('b.txt')
        with pytest.raises(DirtyWorkingTree):
            state.create_branch('feature')

    def test_duplicate_branch(self, repo_with_commit):
        state, _ = repo_with_commit
        with pytest.raises(DuplicateBranch):
            state.create_branch('Master')

    @pytest.mark.parametrize('name', ['', 'has space', 'tab\there', ' lead', 'trail\n', 'form\x0cfeed'])
    def test_invalid_branch_name(self, state, name):
        with pytest.raises(InvalidBranchName):
            state.create_branch(name)

    def test_branch_before_any_commit(self, state):
        state.create_branch('feature')
        assert state.tree.head('feature') is None

    def test_switch_branch_moves_pointer_only(self, repo_with_commit):
        state, first = repo_with_commit
        state.create_branch('feature')
        write_file(state.repo_root, 'a.txt', 'feature work\n')
        second = state.commit('On feature')

        state.switch_branch('Master')

        assert state.current_branch == 'Master'
        assert state.current_commit == second.hash
        assert state.tree.head('Master') == first.hash
        with open(os.path.join(state.repo_root, 'a.txt')) as f:
            assert f.read() == 'feature work\n'

    def test_commit_after_switch_uses_current_commit_as_parent(self, repo_with_commit):
        state, _ = repo_with_commit
        state.create_branch('feature')
        write_file(state.repo_root, 'a.txt', 'feature work\n')
        feature_commit = state.commit('On feature')
        state.switch_branch('Master')

        write_file(state.repo_root, 'a.txt', 'master work\n')
        master_commit = state.commit('On master')

        assert master_commit.parent == feature_commit.hash
        assert master_commit.branch == 'Master'
        assert state.tree.head('Master') == master_commit.hash
        assert state.tree.head('feature') == feature_commit.hash
        assert reload(state).tree.heads == state.tree.heads

    def test_switch_to_unknown_branch(self, repo_with_commit):
        state, _ = repo_with_commit
        with pytest.raises(UnknownBranch):
            state.switch_branch('nope')

    def test_switch_with_dirty_tree(self, repo_with_commit):
        state, _ = repo_with_commit
        state.create_branch('feature')
        os.remove(os.path.join(state.repo_root, 'a.txt'))
        with pytest.raises(DirtyWorkingTree):
            state.switch_branch('Master')
        assert state.current_branch == 'feature'


class TestPersistence:
    # Tests for save() / initialize() round trips

    def test_reload_matches(self, repo_with_commit):
        state, _ = repo_with_commit
        state.create_branch('feature')
        write_file(state.repo_root, 'a.txt', 'edited\n')
        state.commit('Edit')
        write_file(state.repo_root, 'b.txt', 'bee\n')
        state.track('b.txt')
        state.save()

        loaded = reload(state)

        assert loaded.project_name == state.project_name
        assert loaded.current_branch == 'feature'
        assert loaded.branches == state.branches
        assert loaded.tracked_files == state.tracked_files
        assert loaded.added_files == ['b.txt']
        assert loaded.current_commit == state.current_commit
        assert loaded.tree.heads == state.tree.heads
        assert loaded.tree.records == state.tree.records

    def test_allocator_is_reseeded(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')
        state.commit('Second')

        loaded = reload(state)
        write_file(state.repo_root, 'a.txt', 'edited again\n')
        assert loaded.commit('Third').hash == CommitHash(3)

    def test_shared_allocator_never_goes_backwards(self, repo_with_commit):
        state, _ = repo_with_commit
        allocator = HashAllocator()
        for _ in range(20):
            allocator.allocate()

        loaded = RepositoryState(state.repo_root, allocator)
        assert loaded.initialize()
        write_file(state.repo_root, 'a.txt', 'edited\n')
        assert loaded.commit('Next').hash == CommitHash(21)

    def test_summary_format(self):
        lines = format_summary('demo', 'Master', CommitHash(2), CommitHash(3))
        assert lines == ['projName=demo', 'curBranch=Master', 'initialCommit=true',
                         'curCommit=000000000002', 'lastHash=000000000003']
        assert parse_summary(lines).current_commit == CommitHash(2)

    @pytest.mark.parametrize('lines', [
        [],
        ['projName=demo', 'curBranch=Master'],
        ['projName=', 'curBranch=Master', 'initialCommit=false'],
        ['projName=demo', 'curBranch=Master', 'initialCommit=maybe'],
        ['projName=demo', 'curBranch=Master', 'initialCommit=true'],
        ['projName=demo', 'curBranch=Master', 'initialCommit=false', 'curCommit=000000000001'],
        ['projName=demo', 'curBranch=Master', 'initialCommit=true', 'curCommit=x', 'lastHash=000000000001'],
        ['projName=demo', 'curBranch=Master', 'initialCommit=true', 'curCommit=000000000005',
         'lastHash=000000000001'],
    ])
    def test_bad_summary(self, lines):
        with pytest.raises(CorruptRepository):
            parse_summary(lines)


class TestCorruption:
    # Tests that a damaged .kil is rejected as a whole

    def _expect_corrupt(self, repo_root, error=CorruptRepository):
        fresh = RepositoryState(repo_root)
        with pytest.raises(error):
            fresh.initialize()
        assert not fresh.initialized
        assert fresh.tree is None

    def test_missing_tree_file(self, repo_with_commit):
        state, _ = repo_with_commit
        os.remove(repository.kil_path(state.repo_root, repository.TREE_FILE))
        self._expect_corrupt(state.repo_root)

    def test_branch_list_mismatch(self, repo_with_commit):
        state, _ = repo_with_commit
        with open(repository.kil_path(state.repo_root, repository.BRANCHES_FILE), 'w') as f:
            f.write('Master\nghost\n')
        self._expect_corrupt(state.repo_root)

    def test_head_points_to_missing_commit(self, repo_with_commit):
        state, _ = repo_with_commit
        with open(repository.kil_path(state.repo_root, repository.TREE_FILE), 'w') as f:
            f.write('root 000000000001\nbranch 000000000004 Master\n')
        self._expect_corrupt(state.repo_root, DanglingBranchReference)

    def test_missing_commit_directory(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')
        second = state.commit('Second')
        objects.remove_commit(state.repo_root, second.hash)
        self._expect_corrupt(state.repo_root)

    def test_corrupt_diff_file(self, repo_with_commit):
        state, _ = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')
        second = state.commit('Second')
        with open(repository.diff_path(state.repo_root, second.hash, 'a.txt'), 'w') as f:
            f.write('insertions=5 deletions=0\n')
        self._expect_corrupt(state.repo_root)

    def test_file_both_tracked_and_pending(self, repo_with_commit):
        state, _ = repo_with_commit
        with open(repository.kil_path(state.repo_root, repository.ADDED_FILE), 'w') as f:
            f.write('a.txt\n')
        self._expect_corrupt(state.repo_root)

    def test_summary_disagrees_with_tree(self, repo_with_commit):
        state, _ = repo_with_commit
        with open(repository.kil_path(state.repo_root, repository.INFO_FILE), 'w') as f:
            f.write('projName=demo\ncurBranch=Master\ninitialCommit=false\n')
        self._expect_corrupt(state.repo_root)


class TestCommitRollback:
    # Tests that a failed commit leaves memory and disk as they were

    def test_failed_save_rolls_back(self, repo_with_commit, monkeypatch):
        state, first = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')

        real_write_lines = state_module.write_lines
        calls = []

        def failing_once(path, lines):
            calls.append(path)
            if len(calls) == 1:
                raise IOFailure(path, 'write', 'disk full')
            return real_write_lines(path, lines)

        monkeypatch.setattr(state_module, 'write_lines', failing_once)

        with pytest.raises(IOFailure):
            state.commit('Will fail')

        assert state.current_commit == first.hash
        assert state.tree.get(first.hash).children == []
        assert CommitHash(2) not in state.tree
        assert not objects.commit_exists(state.repo_root, CommitHash(2))
        assert objects.read_commit(state.repo_root, first.hash).children == []

        monkeypatch.undo()
        loaded = reload(state)
        assert loaded.current_commit == first.hash

        # The failed hash is handed out again
        assert state.commit('Works now').hash == CommitHash(2)

    def test_failed_object_write_rolls_back(self, repo_with_commit, monkeypatch):
        state, first = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')

        def failing_write_commit(repo_root, record, snapshots):
            raise IOFailure(repository.commit_dir(repo_root, record.hash), 'write', 'read-only file system')

        monkeypatch.setattr(objects, 'write_commit', failing_write_commit)

        with pytest.raises(IOFailure):
            state.commit('Will fail')

        assert state.current_commit == first.hash
        assert state.tracked_files == ['a.txt']
        assert state.tree.head() == first.hash

    def test_unreadable_config_leaves_allocator_alone(self, repo_with_commit):
        state, first = repo_with_commit
        write_file(state.repo_root, 'a.txt', 'edited\n')
        config_path = write_file(state.repo_root, os.path.join('.kil', 'config'), 'no section header\n')

        with pytest.raises(IOFailure):
            state.commit('Will fail')

        assert state.current_commit == first.hash
        assert state.allocator.latest_issued() == first.hash
        assert not objects.commit_exists(state.repo_root, CommitHash(2))

        os.remove(config_path)
        assert state.commit('Works now').hash == CommitHash(2)
