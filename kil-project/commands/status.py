# The command: kil status
# What it does: Shows what the next commit would record: pending files that still exist, tracked files that were deleted, and tracked files whose lines changed
# How it does: It asks RepositoryState.status for a ChangeSet. Nothing is written
# What data structure it uses: List (added and removed paths), Dictionary (path -> FileDiff for modified files)

import sys

from utils.errors import KilError
from utils.state import open_state


def run(args):
    try:
        state = open_state()
        changes = state.status()
    except KilError as e:
        print(f"fatal: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"On branch {state.current_branch}")

    if changes.is_empty():
        print("No new changes to be committed!")
        return

    print("\nChanges to be committed:")
    for path in changes.added:
        print(f"\tnew file:   {path}")
    for path, diff in changes.modified.items():
        print(f"\tmodified:   {path} (+{diff.inserted_line_count} -{diff.deleted_line_count})")
    for path in changes.removed:
        print(f"\tdeleted:    {path}")
