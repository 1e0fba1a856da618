"""
Pytest configuration and shared fixtures for all tests.

This module provides shared fixtures for the test suite, including:
- A temporary site root
- Executable publish scripts with a chosen exit code
- A complete, valid configuration pointing at both
"""

import pytest

from config import get_default_config


def write_publish_script(directory, exit_code=0, body=""):
    """Write an executable shell script that exits with ``exit_code``."""
    script = directory / "publish.sh"
    script.write_text(f"#!/bin/sh\n{body}\nexit {exit_code}\n")
    script.chmod(0o755)
    return script


@pytest.fixture
def site_root(tmp_path):
    """Empty site source directory."""
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def scripts_dir(tmp_path):
    directory = tmp_path / "scripts"
    directory.mkdir()
    return directory


@pytest.fixture
def publish_script(scripts_dir):
    """Publish script that succeeds."""
    return write_publish_script(scripts_dir, exit_code=0)


@pytest.fixture
def failing_publish_script(scripts_dir):
    """Publish script that fails."""
    return write_publish_script(scripts_dir, exit_code=1, body="echo 'build failed' >&2")


@pytest.fixture
def config(site_root, publish_script):
    """A valid configuration for a site in a temporary directory."""
    config = get_default_config()
    config["site"]["root"] = str(site_root)
    config["app"]["publish_command"] = str(publish_script)
    return config
