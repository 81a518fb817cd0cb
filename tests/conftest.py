# Shared pytest fixtures for kil tests

import pytest
import os
import sys
import shutil
import tempfile

# Add kil-project to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'kil-project'))

from utils.state import RepositoryState


@pytest.fixture
def temp_dir():
    # Creates a temporary directory that is cleaned up after the test
    # Also saves/restores cwd to prevent issues when tests change directories
    original_dir = os.getcwd()
    tmp = tempfile.mkdtemp()
    yield tmp
    os.chdir(original_dir)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_repo(temp_dir):
    # Creates an initialized kil project in a temporary directory and moves into it
    original_dir = os.getcwd()
    os.chdir(temp_dir)

    state = RepositoryState(temp_dir)
    state.initialize_project('demo')

    yield temp_dir

    os.chdir(original_dir)


@pytest.fixture
def state(temp_repo):
    # A freshly loaded RepositoryState for the temp repo
    loaded = RepositoryState(temp_repo)
    assert loaded.initialize()
    return loaded


@pytest.fixture
def repo_with_commit(state):
    # A repo where 'a.txt' was added and committed once
    write_file(state.repo_root, 'a.txt', 'one\ntwo\nthree\n')
    state.track('a.txt')
    record = state.commit('Initial commit', include_adds=True)
    return state, record


def write_file(repo_root, rel_path, content):
    full_path = os.path.join(repo_root, rel_path)
    directory = os.path.dirname(full_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(full_path, 'w') as f:
        f.write(content)
    return full_path


def reload(state):
    # A second instance loaded from disk, as the next command invocation would see it
    fresh = RepositoryState(state.repo_root)
    assert fresh.initialize()
    return fresh


# Mock args object for command functions
class MockArgs:
    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)
