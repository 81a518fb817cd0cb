# The command: kil init [name] [--branch NAME]
# What it does: Starts a new kil project in the current directory by creating the hidden `.kil` directory and its bookkeeping files
# How it does: It hands the project name and the first branch name to RepositoryState.initialize_project, which creates `.kil` and `.kil/commits`, sets up a commit tree whose only branch has no commits yet, and saves the empty state
# What data structure it uses: Tree (the file system directory structure is a tree). It also lays the foundation for the commit store (a hash-keyed table) and the commit history (a Directed Acyclic Graph)

import os
import sys

from utils import config, repository
from utils.errors import KilError, RepositoryExists
from utils.state import RepositoryState


def run(args):
    repo_root = os.getcwd()
    project_name = args.name or os.path.basename(repo_root) or 'kil'
    branch_name = args.branch or config.DEFAULT_BRANCH
    kil_dir = repository.kil_path(repo_root)

    try:
        state = RepositoryState(repo_root)
        state.initialize_project(project_name, branch_name)
    except RepositoryExists:
        print(f"kil repository already exists in {kil_dir}/")
        return
    except KilError as e:
        print(f"Error initializing repository: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Initialized empty kil project '{project_name}' in {kil_dir}/")
