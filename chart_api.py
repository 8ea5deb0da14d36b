"""
Core functionality for locating Helm charts and resolving their container image.

This module provides functions to:
- List chart directories under a repository's charts/ folder
- Parse Chart.yaml and values.yaml of each chart
- Build the image reference of the first chart that declares one

Author:
    - Name: Anubhav Patrick
    - Email: anubhav.patrick@giindia.com
    - Date: 2025-06-12
"""

import logging
import os
from typing import NamedTuple

import yaml

from api_errors import NotFoundError, StructureError

# Get module logger
logger = logging.getLogger(__name__)

CHARTS_DIR_NAME = "charts"
CHART_FILE_NAME = "Chart.yaml"
VALUES_FILE_NAME = "values.yaml"
DEFAULT_TAG = "latest"
NULL_SCALARS = {"~", "null", "Null", "NULL"}


class ChartCandidate(NamedTuple):
    """A directory believed to hold a Helm chart."""

    path: str
    name: str


def navigate_to_helm_charts(repo_path):
    """Lists the chart directories inside the charts/ folder of a repository.

    Args:
        repo_path (str): Path to the repository checkout.

    Returns:
        list: ChartCandidate entries, one per subdirectory of charts/.
            Empty if the repository has no charts/ directory.

    Raises:
        StructureError: If charts/ exists but cannot be read.
    """
    charts_dir = os.path.join(repo_path, CHARTS_DIR_NAME)
    if not os.path.isdir(charts_dir):
        logger.warning(f"No '{CHARTS_DIR_NAME}' directory found in {repo_path}")
        return []

    try:
        with os.scandir(charts_dir) as it:
            entries = sorted(it, key=lambda entry: entry.name)
        candidates = [
            ChartCandidate(path=os.path.join(charts_dir, entry.name), name=entry.name)
            for entry in entries
            if entry.is_dir()
        ]
    except OSError as e:
        raise StructureError(f"failed to read charts directory {charts_dir}: {e}") from e

    for candidate in candidates:
        logger.info(f"Found Helm chart directory: {candidate.path}")
    return candidates


def load_yaml_document(filepath):
    """Reads and parses a YAML mapping, treating malformed content as empty.

    Args:
        filepath (str): The path to the YAML file.

    Returns:
        dict: The parsed mapping, or an empty dict if the content is not a valid mapping.

    Raises:
        OSError: If the file cannot be read.
    """
    with open(filepath, 'r', encoding='utf-8') as f:
        content = f.read()

    # BaseLoader keeps every scalar as its literal text: appVersion 1.10 stays "1.10"
    try:
        document = yaml.load(content, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring malformed YAML in {filepath}: {e}")
        return {}

    if document is None:
        return {}
    if not isinstance(document, dict):
        logger.warning(f"Ignoring {filepath}: expected a mapping, got {type(document).__name__}")
        return {}
    return document


def _scalar_text(value):
    if not isinstance(value, str):
        return ""
    value = value.strip()
    if value in NULL_SCALARS:
        return ""
    return value


def extract_image_fields(values, chart):
    """Extracts (repository, tag) for a chart, falling back to appVersion for the tag.

    Args:
        values (dict): Parsed values.yaml.
        chart (dict): Parsed Chart.yaml.

    Returns:
        tuple: (repository, tag); repository is empty if the chart declares no image.
    """
    image = values.get('image')
    if not isinstance(image, dict):
        image = {}

    repository = _scalar_text(image.get('repository'))
    tag = _scalar_text(image.get('tag'))
    if not tag:
        tag = _scalar_text(chart.get('appVersion'))
    return repository, tag


def resolve_image_reference(candidates):
    """Resolves the image reference of the first chart that declares an image repository.

    Args:
        candidates (list): ChartCandidate entries in enumeration order.

    Returns:
        str: The image reference in repository:tag form.

    Raises:
        NotFoundError: If no candidate yields an image repository.
        OSError: If an existing chart file cannot be read.
    """
    for candidate in candidates:
        logger.info(f"Checking: {candidate.path}")

        chart_file = os.path.join(candidate.path, CHART_FILE_NAME)
        values_file = os.path.join(candidate.path, VALUES_FILE_NAME)

        if not os.path.isfile(chart_file):
            logger.warning(f"{CHART_FILE_NAME} not found in: {candidate.path}")
            continue
        if not os.path.isfile(values_file):
            logger.warning(f"{VALUES_FILE_NAME} not found in: {candidate.path}")
            continue

        chart = load_yaml_document(chart_file)
        values = load_yaml_document(values_file)

        repository, tag = extract_image_fields(values, chart)
        if not repository:
            logger.warning(f"No image repository found in {values_file}")
            continue

        if not tag:
            logger.warning(f"No image tag or appVersion in {candidate.path}, using '{DEFAULT_TAG}'")
            tag = DEFAULT_TAG

        image_name = f"{repository}:{tag}"
        logger.info(f"Image to inspect: {image_name}")
        return image_name

    raise NotFoundError("no valid Helm chart found")
