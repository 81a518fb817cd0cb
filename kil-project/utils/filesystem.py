# What it does: The thin I/O layer the engine talks to: existence probes, directory creation, path joining and line-oriented reads/writes
# How it does: Each function wraps one os/open call and turns any OSError into an IOFailure naming the path and the operation, so callers handle a single error type
# What data structure it uses: List (files are exchanged as lists of lines without their terminators)

import os
import shutil

from .errors import IOFailure


def exists(path): # True for files and directories alike
    return os.path.exists(path)


def is_file(path):
    return os.path.isfile(path)


def create_directory(path): # Returns False when the directory was already there
    try:
        os.mkdir(path)
    except FileExistsError:
        return False
    except OSError as e:
        raise IOFailure(path, "create directory", e.strerror) from e
    return True


def create_directories(base, components):
    """
    Creates every directory in `components` below `base`, one level at a time.
    `components` is what split_into_directory_components() returns.
    """
    current = base
    for component in components:
        current = append_path(current, component) if current else component
        create_directory(current)
    return current


def append_path(a, b):
    return os.path.join(a, b)


def split_into_directory_components(path): # 'src/pkg/mod.py' -> ['src', 'pkg']
    directory = os.path.dirname(os.path.normpath(path))
    if not directory:
        return []
    return [part for part in directory.split(os.sep) if part and part != '.']


def read_lines(path):
    """
    Reads a text file into a list of lines without line terminators.
    A missing final newline is not recorded, so 'a\\nb' and 'a\\nb\\n' read the same.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
    except OSError as e:
        raise IOFailure(path, "read", e.strerror) from e
    except UnicodeDecodeError as e:
        raise IOFailure(path, "decode", str(e)) from e

    if content.endswith('\n'):
        content = content[:-1]
    if not content:
        return []
    return content.split('\n')


def write_lines(path, lines):
    try:
        with open(path, 'w', encoding='utf-8') as f:
            for line in lines:
                f.write(f"{line}\n")
    except OSError as e:
        raise IOFailure(path, "write", e.strerror) from e


def remove_tree(path):
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise IOFailure(path, "remove", e.strerror) from e
