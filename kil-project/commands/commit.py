# The command: kil commit -m "<message>" [-a]
# What it does: Records every change since the last commit as a new commit on the current branch
# How it does: RepositoryState.commit works out removed files and per-file line diffs for tracked files (plus pending adds when -a is given), allocates the next commit hash, writes the commit under `.kil/commits/<hash>/`, links it to its parent and advances the branch. Any I/O failure leaves the repository as it was
# What data structure it uses: Directed Acyclic Graph (DAG) (each commit links to its parent and its children), Hash Table / Dictionary (the commit store keyed by hash, and path -> diff for modified files)

import sys

from utils.errors import KilError, NothingToCommit
from utils.state import open_state


def run(args):
    try:
        state = open_state()
        record = state.commit(args.message, include_adds=args.all)
    except NothingToCommit as e:
        print(e)
        sys.exit(1)
    except KilError as e:
        print(f"Error during commit: {e}", file=sys.stderr)
        sys.exit(1)

    first_line = record.message.splitlines()[0] if record.message else ''
    print(f"[{record.branch} {record.hash}] {first_line}")
    for path in record.added_files:
        print(f"Created file {path}")
    for path in record.removed_files:
        print(f"Removed file {path}")
    for path, diff in record.diffs.items():
        print(f"Updating file {path} with {diff.inserted_line_count} insertions and "
              f"{diff.deleted_line_count} deletions")
