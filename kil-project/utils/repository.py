# What it does: Knows where a kil repository lives: finds the repository root and names every file inside the `.kil` directory
# How it does: `find_repo_root` walks up the directory tree until it sees a `.kil` directory; the other helpers just join paths below it so no other module hard-codes the layout
# What data structure it uses: Uses recursion (linear recursion up the directory tree) to find the repo root. The `.kil` layout itself is a small fixed tree of files

import os

KIL_DIR = '.kil'

INFO_FILE = 'info'
TRACKED_FILE = 'tracked'
ADDED_FILE = 'added'
BRANCHES_FILE = 'branches'
TREE_FILE = 'tree'
CONFIG_FILE = 'config'
COMMITS_DIR = 'commits'

SNAPSHOT_DIR = 'files'
DIFF_DIR = 'diffs'
DIFF_SUFFIX = '.diff'


def find_repo_root(path='.'): # Recursively searches for the .kil directory to find the repository root
    path = os.path.abspath(path)
    kil_dir = os.path.join(path, KIL_DIR)
    if os.path.isdir(kil_dir):
        return path
    parent_path = os.path.dirname(path)
    if parent_path == path:
        return None
    return find_repo_root(parent_path)


def kil_path(repo_root, *parts):
    return os.path.join(repo_root, KIL_DIR, *parts)


def commits_path(repo_root):
    return kil_path(repo_root, COMMITS_DIR)


def commit_dir(repo_root, commit_hash): # .kil/commits/<hash>
    return os.path.join(commits_path(repo_root), str(commit_hash))


def commit_record_path(repo_root, commit_hash): # .kil/commits/<hash>/<hash>.txt
    return os.path.join(commit_dir(repo_root, commit_hash), f"{commit_hash}.txt")


def snapshot_path(repo_root, commit_hash, file_path):
    return os.path.join(commit_dir(repo_root, commit_hash), SNAPSHOT_DIR, file_path)


def diff_path(repo_root, commit_hash, file_path):
    return os.path.join(commit_dir(repo_root, commit_hash), DIFF_DIR, file_path + DIFF_SUFFIX)


def working_path(repo_root, file_path): # Tracked paths are stored relative to the repository root
    return os.path.join(repo_root, file_path)


def normalize_path(repo_root, path):
    """
    Turns a user-supplied path into the repository-relative form kil stores.
    Returns None for paths outside the repository or inside .kil itself.
    """
    abs_path = os.path.abspath(path)
    rel_path = os.path.relpath(abs_path, repo_root)
    if rel_path == os.curdir or rel_path.startswith(os.pardir + os.sep) or rel_path == os.pardir:
        return None
    rel_path = os.path.normpath(rel_path)
    if rel_path.split(os.sep)[0] == KIL_DIR:
        return None
    return rel_path
