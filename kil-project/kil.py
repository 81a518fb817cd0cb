import argparse
import sys

from commands import init, add, commit, log, status, config, branch, checkout
from utils import config as config_utils, repository
from utils.errors import KilError
from utils.logger import DEFAULT_LEVEL, setup_logging


# The main entry point for the kil version control system
def main(argv=None):
    # The main parser
    parser = argparse.ArgumentParser(description="kil: a minimal local version control system.")
    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    # Command: init
    init_parser = subparsers.add_parser("init", help="Start a new kil project in the current directory.")
    init_parser.add_argument("name", nargs="?", help="Project name (defaults to the directory name).")
    init_parser.add_argument("--branch", help=f"Name of the first branch (default: {config_utils.DEFAULT_BRANCH}).")
    init_parser.set_defaults(func=init.run)

    # Command: add
    add_parser = subparsers.add_parser("add", help="Mark files to be included in the next commit.")
    add_parser.add_argument("files", nargs="+", help="Files to add.")
    add_parser.set_defaults(func=add.run)

    # Command: commit
    commit_parser = subparsers.add_parser("commit", help="Record changes to the repository.")
    commit_parser.add_argument("-m", "--message", required=True, help="Commit message.")
    commit_parser.add_argument("-a", "--all", action="store_true", help="Also commit the files marked with 'kil add'.")
    commit_parser.set_defaults(func=commit.run)

    # Command: log
    log_parser = subparsers.add_parser("log", help="Show commit logs.")
    log_parser.set_defaults(func=log.run)

    # Command: status
    status_parser = subparsers.add_parser("status", help="Show the working tree status.")
    status_parser.set_defaults(func=status.run)

    # Command: config
    config_parser = subparsers.add_parser("config", help="Set a configuration value (e.g. user.name).")
    config_parser.add_argument("key", help="The configuration key (e.g., user.name).")
    config_parser.add_argument("value", help="The configuration value.")
    config_parser.set_defaults(func=config.run)

    # Command: branch
    branch_parser = subparsers.add_parser("branch", help="List branches, or create one and switch to it.")
    branch_parser.add_argument("name", nargs="?", help="The name of the branch to create.")
    branch_parser.set_defaults(func=branch.run)

    # Command: checkout
    checkout_parser = subparsers.add_parser("checkout", help="Switch branches.")
    checkout_parser.add_argument("branch_name", help="The name of the branch to switch to.")
    checkout_parser.set_defaults(func=checkout.run)

    # Parse the arguments
    args = parser.parse_args(argv)

    try:
        level = config_utils.get_log_level(repository.find_repo_root()) or DEFAULT_LEVEL
    except KilError as e:
        print(f"warning: {e}", file=sys.stderr)
        level = DEFAULT_LEVEL
    setup_logging(level)

    # If a command was specified, run its function
    if hasattr(args, 'func'):
        args.func(args)
    else:
        parser.print_help()

if __name__ == "__main__":
    main()
