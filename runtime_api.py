"""
Core functionality for inspecting container images in the local container runtime.

This module provides functions to:
- Check whether an image is present locally and pull it if not
- Run the runtime's image inspection and parse its JSON output
- Derive the human-readable size and layer count of an image

Author:
    - Name: Anubhav Patrick
    - Email: anubhav.patrick@giindia.com
    - Date: 2025-06-12
"""

import json
import math
import logging
import subprocess
from typing import NamedTuple

from api_errors import MetadataError, RuntimeUnavailableError

# Get module logger
logger = logging.getLogger(__name__)

BYTES_PER_MB = 1000 * 1000


class InspectionRecord(NamedTuple):
    """The fields consumed from one runtime inspection record."""

    size: int
    layers: list


class ImageInfo(NamedTuple):
    """Size and layer summary of a container image."""

    name: str
    size: str
    layers: int

    # Attribute names used by the image details page
    @property
    def Name(self):
        return self.name

    @property
    def Size(self):
        return self.size

    @property
    def Layers(self):
        return self.layers


def run_command(cmd, timeout):
    """
    Runs a command and returns its exit status and decoded output.

    Args:
        cmd (list): The command and its arguments.
        timeout (int): Seconds to wait before killing the command.

    Returns:
        tuple: (returncode, stdout, stderr)

    Raises:
        FileNotFoundError: If the executable does not exist.
        subprocess.TimeoutExpired: If the command does not finish in time.
    """
    process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise
    return (
        process.returncode,
        stdout.decode('utf-8', errors='replace'),
        stderr.decode('utf-8', errors='replace')
    )


def image_exists_locally(image_name, runtime_binary="docker", timeout=30):
    """Returns True if the runtime's image index already holds the image."""
    try:
        returncode, stdout, stderr = run_command([runtime_binary, 'images', '-q', image_name], timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"Image presence query for {image_name} failed: {e}. Assuming image is absent.")
        return False

    if returncode != 0:
        logger.warning(f"Image presence query for {image_name} exited with {returncode}: {stderr.strip()}")
        return False
    return bool(stdout.strip())


def pull_image(image_name, runtime_binary="docker", timeout=600):
    """
    Pulls an image, streaming the runtime's progress to the console.

    Args:
        image_name (str): The image reference to pull.
        runtime_binary (str): The container runtime executable.
        timeout (int): Seconds to wait for the pull.

    Raises:
        RuntimeUnavailableError: If the pull fails or times out.
    """
    logger.info(f"Pulling image: {image_name}")
    try:
        process = subprocess.Popen([runtime_binary, 'pull', image_name])
    except OSError as e:
        raise RuntimeUnavailableError(f"failed to pull image: {e}") from e

    try:
        returncode = process.wait(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        process.kill()
        process.wait()
        raise RuntimeUnavailableError(f"failed to pull image: timed out after {timeout}s") from e

    if returncode != 0:
        raise RuntimeUnavailableError(f"failed to pull image: exit status {returncode}")
    logger.info(f"Pulled image: {image_name}")


def inspect_image(image_name, runtime_binary="docker", timeout=60):
    """
    Returns the runtime's inspection records for an image.

    Args:
        image_name (str): The image reference to inspect.
        runtime_binary (str): The container runtime executable.
        timeout (int): Seconds to wait for the inspection.

    Returns:
        list: The decoded inspection records, at least one.

    Raises:
        MetadataError: If the inspection fails or its output cannot be parsed.
    """
    try:
        returncode, stdout, stderr = run_command([runtime_binary, 'image', 'inspect', image_name], timeout)
    except OSError as e:
        raise MetadataError(f"failed to inspect image: {e}") from e
    except subprocess.TimeoutExpired as e:
        raise MetadataError(f"failed to inspect image: timed out after {timeout}s") from e

    if returncode != 0:
        raise MetadataError(f"failed to inspect image: {stderr.strip() or 'exit status ' + str(returncode)}")

    try:
        records = json.loads(stdout)
    except json.JSONDecodeError as e:
        logger.error(f"Inspect output for {image_name} is not valid JSON: {e}")
        raise MetadataError("failed to parse inspect data") from e

    if not isinstance(records, list) or not records:
        logger.error(f"Inspect output for {image_name} holds no records: <<<{stdout.strip()}>>>")
        raise MetadataError("failed to parse inspect data")
    return records


def parse_inspection_record(record):
    """
    Parses one inspection record into an InspectionRecord.

    Args:
        record (dict): A single element of the inspect output.

    Returns:
        InspectionRecord: The total size in bytes and the root filesystem layer list.

    Raises:
        MetadataError: If the record does not have the expected shape.
    """
    if not isinstance(record, dict):
        raise MetadataError(f"malformed inspection metadata: record is a {type(record).__name__}")

    size = record.get('Size')
    if isinstance(size, bool) or not isinstance(size, (int, float)):
        raise MetadataError(f"malformed inspection metadata: Size is {size!r}")
    # json accepts NaN and Infinity
    if (isinstance(size, float) and not math.isfinite(size)) or size < 0:
        raise MetadataError(f"malformed inspection metadata: Size is {size!r}")

    rootfs = record.get('RootFS')
    if not isinstance(rootfs, dict):
        raise MetadataError("malformed inspection metadata: RootFS is missing")

    layers = rootfs.get('Layers')
    if not isinstance(layers, list):
        raise MetadataError("malformed inspection metadata: RootFS.Layers is missing")

    return InspectionRecord(size=int(size), layers=layers)


def format_size_mb(size_bytes):
    """Formats a byte count as decimal megabytes, e.g. 1500000 -> '1.50 MB'."""
    return f"{size_bytes / BYTES_PER_MB:.2f} MB"


def get_image_size_and_layers(image_name, runtime_binary="docker", query_timeout=30,
                              pull_timeout=600, inspect_timeout=60):
    """
    Ensures an image is available locally and summarizes its size and layers.

    Args:
        image_name (str): The image reference.
        runtime_binary (str): The container runtime executable.
        query_timeout (int): Seconds allowed for the presence query.
        pull_timeout (int): Seconds allowed for a pull.
        inspect_timeout (int): Seconds allowed for the inspection.

    Returns:
        ImageInfo: Name, decimal-MB size and layer count of the image.
    """
    if image_exists_locally(image_name, runtime_binary, query_timeout):
        logger.info(f"Image '{image_name}' already exists locally.")
    else:
        pull_image(image_name, runtime_binary, pull_timeout)

    records = inspect_image(image_name, runtime_binary, inspect_timeout)
    inspection = parse_inspection_record(records[0])

    image_info = ImageInfo(
        name=image_name,
        size=format_size_mb(inspection.size),
        layers=len(inspection.layers)
    )
    logger.info(f"Image: {image_info.name}, Size: {image_info.size}, Layers: {image_info.layers}")
    return image_info
