# This file makes the 'utils' directory a Python package
# The engine lives here: diff, objects, tree and state, on top of filesystem, repository, config, errors and logger
