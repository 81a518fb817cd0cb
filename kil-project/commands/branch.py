# The command: kil branch [<branch-name>]
# What it does: Creates a new branch at the current branch's head and switches to it, or if no name is given, lists all branches
# How it does: Creating goes through RepositoryState.create_branch, which refuses while the working tree has uncommitted changes and then forks the commit tree. Listing reads the branch set and marks the current one with an asterisk
# What data structure it uses: Map / Dictionary (branch name -> head commit inside the commit tree), Set (branch names), List (sorted for display)

import sys

from utils.errors import KilError
from utils.state import open_state


def run(args):
    # With no arguments, lists all branches.
    # With an argument, creates the branch and moves onto it.
    try:
        state = open_state()
    except KilError as e:
        print(f"fatal: {e}", file=sys.stderr)
        sys.exit(1)

    if args.name:
        try:
            state.create_branch(args.name)
            state.save()
        except KilError as e:
            print(f"fatal: {e}", file=sys.stderr)
            sys.exit(1)
        head = state.tree.head()
        where = f"at commit {head}" if head is not None else "with no commits yet"
        print(f"Switched to a new branch '{args.name}' {where}")
    else:
        for branch in sorted(state.branches):
            if branch == state.current_branch:
                print(f"* {branch}")
            else:
                print(f"  {branch}")
