# What it does: Defines every error the kil engine can raise, rooted at a single KilError so commands can catch them in one place
# How it does: Load-time problems derive from CorruptRepository, workflow preconditions are their own classes, and IOFailure remembers the path and the operation that failed
# What data structure it uses: A class hierarchy (tree of exception types)


class KilError(Exception):
    pass


class InvalidBranchName(KilError):
    def __init__(self, branch_name):
        super().__init__(f"'{branch_name}' is not a valid branch name.")
        self.branch_name = branch_name


class NotInitialized(KilError):
    def __init__(self, message="not a kil repository (run 'kil init' first)"):
        super().__init__(message)


class RepositoryExists(KilError):
    pass


class PathOutsideRepository(KilError):
    def __init__(self, path):
        super().__init__(f"'{path}' is outside the repository")
        self.path = path


class CorruptRepository(KilError): # Persisted state failed validation; the whole load is rejected
    pass


class CorruptTreeFormat(CorruptRepository):
    pass


class DanglingBranchReference(CorruptRepository):
    pass


class DuplicateBranch(KilError):
    def __init__(self, branch_name):
        super().__init__(f"A branch named '{branch_name}' already exists.")
        self.branch_name = branch_name


class UnknownBranch(KilError):
    def __init__(self, branch_name):
        super().__init__(f"No branch named '{branch_name}' found.")
        self.branch_name = branch_name


class DirtyWorkingTree(KilError):
    def __init__(self, message="Please commit your changes before switching branches."):
        super().__init__(message)


class NothingToCommit(KilError):
    def __init__(self, message="nothing to commit, working tree clean"):
        super().__init__(message)


class InvalidHashFormat(KilError):
    def __init__(self, text):
        super().__init__(f"Invalid commit hash: {text!r}")
        self.text = text


class NoHashYetIssued(KilError):
    def __init__(self, message="No commit hash has been issued yet."):
        super().__init__(message)


class IOFailure(KilError):
    def __init__(self, path, operation, reason=None):
        message = f"could not {operation} '{path}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path
        self.operation = operation
