# The command: kil checkout <branch-name>
# What it does: Switches the current branch.
# How it does: RepositoryState.switch_branch checks that the branch exists and that the working tree is clean, then moves the current-branch pointer. Files in the working directory are not rewritten and the current commit stays where it is
# What data structure it uses: Set (branch validation), Map / Dictionary (branch -> head inside the commit tree)

import sys

from utils.errors import KilError
from utils.state import open_state


def run(args):
    target_name = args.branch_name
    try:
        state = open_state()
        if state.current_branch == target_name:
            print(f"Already on '{target_name}'")
            return
        state.switch_branch(target_name)
        state.save()
    except KilError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Switched to branch '{target_name}'")
