# The command: kil add <file>...
# What it does: Marks files to be included in the next commit (they become "pending adds")
# How it does: Each argument is turned into a path relative to the repository root and passed to RepositoryState.track, which ignores files that are already tracked or already pending. Whether the file still exists is checked again at commit time. The updated lists are then saved
# What data structure it uses: List (the ordered pending-add list), and performs a Tree Traversal (when expanding `.` using os.walk)

import os
import sys

from utils import repository
from utils.errors import KilError
from utils.state import open_state


def run(args):
    try:
        state = open_state()
    except KilError as e:
        print(f"fatal: {e}", file=sys.stderr)
        sys.exit(1)

    repo_root = state.repo_root
    for file_path in _expand_files(args.files, repo_root):
        rel_path = repository.normalize_path(repo_root, file_path)
        if rel_path is None:
            print(f"fatal: '{file_path}' is outside the repository", file=sys.stderr)
            continue

        if not os.path.isfile(repository.working_path(repo_root, rel_path)):
            print(f"fatal: pathspec '{file_path}' did not match any files", file=sys.stderr)
            continue

        if state.track(rel_path):
            print(f"Added '{rel_path}' to the next commit.")
        else:
            print(f"'{rel_path}' is already tracked.")

    try:
        state.save()
    except KilError as e:
        print(f"Error saving state: {e}", file=sys.stderr)
        sys.exit(1)


def _expand_files(file_args, repo_root):
    """
    Expands '.' into every file of the repository (skipping .kil); other arguments
    are returned as given.
    """
    if '.' not in file_args and './' not in file_args:
        return list(file_args)

    expanded_files = []
    for root, dirs, files in os.walk(repo_root):
        if repository.KIL_DIR in dirs:
            dirs.remove(repository.KIL_DIR)
        dirs.sort()
        for file in sorted(files):
            expanded_files.append(os.path.join(root, file))
    return expanded_files
