# What it does: Manages all read/write operations for the `.kil/config` file
# What data structure it uses: Map / Hash Table / Dictionary (the INI file format is a map of sections to key-value pairs, managed by Python's `configparser`)

import configparser
import os

from . import repository
from .errors import IOFailure, NotInitialized

DEFAULT_BRANCH = 'Master'
DEFAULT_AUTHOR = 'anonymous'


def get_config_path(repo_root):  # Returns the path to the config file within the repository
    return repository.kil_path(repo_root, repository.CONFIG_FILE)


def read_config(repo_root): # Reads and returns the configuration as a ConfigParser object (empty when there is no file)
    config = configparser.ConfigParser()
    config_path = get_config_path(repo_root)
    if os.path.exists(config_path):
        try:
            config.read(config_path)
        except configparser.Error as e:
            raise IOFailure(config_path, "parse", str(e)) from e
    return config


def write_config(repo_root, key, value): # Sets a configuration key to a value and writes it to the config file
    if not os.path.isdir(repository.kil_path(repo_root)):
        raise NotInitialized()

    try:
        section, option = key.split('.', 1)
    except ValueError:
        raise ValueError("Invalid key format. Should be 'section.key'.")
    if not section or not option:
        raise ValueError("Invalid key format. Should be 'section.key'.")

    config = read_config(repo_root)
    if not config.has_section(section):
        config.add_section(section)
    config.set(section, option, value)

    config_path = get_config_path(repo_root)
    try:
        with open(config_path, 'w') as configfile:
            config.write(configfile)
    except OSError as e:
        raise IOFailure(config_path, "write", e.strerror) from e


def get_user_name(repo_root): # Author recorded on new commits
    return read_config(repo_root).get('user', 'name', fallback=DEFAULT_AUTHOR)


def get_log_level(repo_root): # core.log_level, or None to leave the logger default alone
    if not repo_root:
        return None
    return read_config(repo_root).get('core', 'log_level', fallback=None)
