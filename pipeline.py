"""
Chart-to-image pipeline: clone a chart repository, resolve its image and inspect it.

Author:
    - Name: Anubhav Patrick
    - Email: anubhav.patrick@giindia.com
    - Date: 2025-06-12
"""

import logging

from chart_api import navigate_to_helm_charts, resolve_image_reference
from repo_api import cleanup_old_checkouts, clone_helm_repo
from runtime_api import get_image_size_and_layers

# Get module logger
logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "repo_config": {
        "storage_root": "repo_db",
        "git_binary": "git",
        "clone_timeout": 300,
        "retention_hours": 24
    },
    "runtime_config": {
        "runtime_binary": "docker",
        "query_timeout": 30,
        "pull_timeout": 600,
        "inspect_timeout": 60
    }
}


def run(repo_url, settings=None):
    """
    Resolves and inspects the container image declared by a chart repository.

    Any stage failure propagates unchanged; no partial result is returned.

    Args:
        repo_url (str): The chart repository URL.
        settings (dict, optional): Configuration with 'repo_config' and 'runtime_config'
            sections. Defaults to DEFAULT_SETTINGS.

    Returns:
        ImageInfo: Name, size and layer count of the resolved image.
    """
    settings = settings or DEFAULT_SETTINGS
    repo_cfg = {**DEFAULT_SETTINGS['repo_config'], **settings.get('repo_config', {})}
    runtime_cfg = {**DEFAULT_SETTINGS['runtime_config'], **settings.get('runtime_config', {})}

    cleanup_old_checkouts(repo_cfg['storage_root'], repo_cfg['retention_hours'])

    logger.info(f"Resolving image for repository: {repo_url}")
    target_dir = clone_helm_repo(
        repo_url,
        storage_root=repo_cfg['storage_root'],
        git_binary=repo_cfg['git_binary'],
        timeout=repo_cfg['clone_timeout']
    )

    candidates = navigate_to_helm_charts(target_dir)
    logger.info(f"Found {len(candidates)} chart candidates in {target_dir}")

    image_name = resolve_image_reference(candidates)

    return get_image_size_and_layers(
        image_name,
        runtime_binary=runtime_cfg['runtime_binary'],
        query_timeout=runtime_cfg['query_timeout'],
        pull_timeout=runtime_cfg['pull_timeout'],
        inspect_timeout=runtime_cfg['inspect_timeout']
    )
