"""
Chart metadata from packaged charts.

A packaged chart (`helm package` output) is a gzip tarball whose single
top-level directory holds Chart.yaml.
"""
from __future__ import annotations

import tarfile
from pathlib import Path, PurePosixPath
from typing import Union

import yaml
from pydantic import ValidationError

from .models import ChartMetadata

__all__ = ["read_chart_metadata"]


def read_chart_metadata(chart_file: Union[str, Path]) -> ChartMetadata:
    """
    Read Chart.yaml out of a packaged chart.

    Args:
        chart_file: Path to the chart .tgz

    Returns:
        Parsed chart metadata

    Raises:
        FileNotFoundError: If chart_file does not exist
        ValueError: If the archive is unreadable or holds no valid Chart.yaml
    """
    chart_file = Path(chart_file)
    if not chart_file.is_file():
        raise FileNotFoundError(f"Chart file not found: {chart_file}")

    try:
        with tarfile.open(chart_file, "r:*") as tar:
            member = _find_chart_yaml(tar)
            if member is None:
                raise ValueError(f"No Chart.yaml found in {chart_file}")
            f = tar.extractfile(member)
            if f is None:
                raise ValueError(f"Chart.yaml in {chart_file} is not a regular file")
            with f:
                data = yaml.safe_load(f)
    except (tarfile.TarError, OSError) as e:
        raise ValueError(f"Cannot read chart archive {chart_file}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid Chart.yaml in {chart_file}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Chart.yaml in {chart_file} is not a mapping")

    try:
        return ChartMetadata.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid Chart.yaml in {chart_file}: {e}") from e


def _find_chart_yaml(tar: tarfile.TarFile):
    """Top-level <chart>/Chart.yaml, ignoring Chart.yaml of bundled subcharts."""
    for member in tar.getmembers():
        # PurePosixPath drops "." segments, so "./chart/Chart.yaml" counts as top-level
        parts = PurePosixPath(member.name.lstrip("/")).parts
        if len(parts) == 2 and parts[1] == "Chart.yaml":
            return member
    return None
