"""
Retrieval of Helm chart repositories into the local checkout store.

This module provides functions to:
- Clone a chart repository into repo_db/<timestamp>_<repo-name>
- Remove checkouts older than the configured retention window

Author:
    - Name: Anubhav Patrick
    - Email: anubhav.patrick@giindia.com
    - Date: 2025-06-12
"""

import logging
import os
import shutil
import subprocess
from datetime import datetime, timedelta

from api_errors import RetrievalError

# Get module logger
logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def generate_timestamp(now=None):
    """Returns a timestamp in YYYYMMDDHHMMSS format."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def derive_repo_name(repo_url):
    """Derives the checkout name from the last path segment of a repository URL.

    Args:
        repo_url (str): The repository URL, e.g. https://github.com/org/charts.git

    Returns:
        str: The repository name without a trailing '.git'.
    """
    last_segment = repo_url.strip().rstrip('/').split('/')[-1]
    if last_segment.endswith('.git'):
        last_segment = last_segment[:-len('.git')]
    if not last_segment:
        raise RetrievalError(f"cannot derive repository name from URL: '{repo_url}'")
    return last_segment


def clone_helm_repo(repo_url, storage_root="repo_db", git_binary="git", timeout=300):
    """Clones a Helm chart repository into a fresh timestamped directory.

    Args:
        repo_url (str): The repository URL to clone.
        storage_root (str): Directory holding all checkouts.
        git_binary (str): The git executable to run.
        timeout (int): Seconds to wait for the clone before giving up.

    Returns:
        str: Path of the new checkout.

    Raises:
        RetrievalError: If the clone cannot be performed.
    """
    if not repo_url or not repo_url.strip():
        raise RetrievalError("repository URL is empty")
    if repo_url.strip().startswith("-"):
        raise RetrievalError(f"invalid repository URL: '{repo_url}'")

    repo_name = derive_repo_name(repo_url)
    target_dir = os.path.join(storage_root, f"{generate_timestamp()}_{repo_name}")

    try:
        os.makedirs(storage_root, exist_ok=True)
    except OSError as e:
        raise RetrievalError(f"failed to create {storage_root} directory: {e}") from e

    logger.info(f"Cloning {repo_url} into {target_dir}")
    try:
        process = subprocess.Popen(
            [git_binary, 'clone', '--', repo_url, target_dir],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE
        )
    except FileNotFoundError as e:
        raise RetrievalError(f"git clone failed: '{git_binary}' command not found") from e

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        process.kill()
        process.communicate()
        raise RetrievalError(f"git clone failed: timed out after {timeout}s") from e

    if process.returncode != 0:
        error_message = stderr.decode('utf-8', errors='replace').strip()
        logger.error(f"git clone of {repo_url} exited with {process.returncode}: {error_message}")
        raise RetrievalError(f"git clone failed: {error_message or 'exit status ' + str(process.returncode)}")

    logger.debug(f"git clone output: {stdout.decode('utf-8', errors='replace').strip()}")
    logger.info(f"Repository cloned to: {target_dir}")
    return target_dir


def _checkout_time(entry_name):
    # Checkout directories are named <timestamp>_<repo-name>
    prefix = entry_name.split('_', 1)[0]
    try:
        return datetime.strptime(prefix, TIMESTAMP_FORMAT)
    except ValueError:
        return None


def cleanup_old_checkouts(storage_root, retention_hours, now=None):
    """Removes checkouts whose timestamp is older than the retention window.

    Args:
        storage_root (str): Directory holding all checkouts.
        retention_hours (float): Age limit in hours; None or <= 0 disables cleanup.
        now (datetime, optional): Reference time, defaults to the current time.

    Returns:
        list: Paths of the removed checkouts.
    """
    removed = []
    if not retention_hours or retention_hours <= 0:
        return removed
    if not os.path.isdir(storage_root):
        return removed

    cutoff = (now or datetime.now()) - timedelta(hours=retention_hours)
    for entry in sorted(os.listdir(storage_root)):
        path = os.path.join(storage_root, entry)
        checkout_time = _checkout_time(entry)
        if checkout_time is None or not os.path.isdir(path):
            logger.debug(f"Leaving unrecognised entry in checkout store: {path}")
            continue
        if checkout_time >= cutoff:
            continue
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning(f"Failed to remove expired checkout {path}: {e}")
            continue
        logger.info(f"Removed expired checkout: {path}")
        removed.append(path)

    return removed
