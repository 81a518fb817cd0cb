# The command: kil log
# What it does: Displays the commit history from the current commit back to the first one
# How it does: RepositoryState.log follows parent hashes through the commit tree until it reaches the root commit, and each record is printed newest first
# What data structure it uses: It performs a Graph Traversal (a linear walk up the parent chain) on the Directed Acyclic Graph (DAG) formed by the commits

import sys

from utils.errors import KilError
from utils.state import open_state


def run(args):
    try:
        state = open_state()
        records = state.log()
    except KilError as e:
        print(f"fatal: {e}", file=sys.stderr)
        sys.exit(1)

    if not records:
        print(f"fatal: your current branch '{state.current_branch}' does not have any commits yet")
        return

    for record in records:
        print(f"commit {record.hash}")
        print(f"Branch: {record.branch}")
        print(f"Author: {record.author}")
        if record.children:
            print(f"Children: {', '.join(str(child) for child in record.children)}")
        print()
        for line in record.message.splitlines() or ['']:
            print(f"    {line}")
        print()
