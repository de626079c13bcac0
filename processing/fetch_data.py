#!/usr/bin/env python3
"""
fetch_data.py - Cached downloads of the raw inputs

Each entry under ``downloads`` in config.yaml is fetched to the matching
``input_files`` path. Entries with an ``archive`` path are downloaded there and
unpacked into the input file's directory. Files already on disk are reused.
"""

import zipfile
from pathlib import Path
from typing import Dict, List, Union

import requests
from loguru import logger

from ops.config_loader import Config

from .data_utils import ensure_output_directory

USER_AGENT = "grizzly-gbpu-pipeline/0.1"
CHUNK_SIZE = 1 << 16


def download_file(
    url: str, dest: Union[str, Path], *, overwrite: bool = False, timeout: float = 60
) -> Path:
    """Stream ``url`` to ``dest`` unless it is already cached."""
    dest = ensure_output_directory(dest)

    if dest.exists() and not overwrite:
        logger.info(f"  📦 Using cached {dest.name}")
        return dest

    logger.info(f"⬇️ Downloading {url}")
    partial = dest.with_name(dest.name + ".part")
    with requests.get(url, stream=True, timeout=timeout, headers={"User-Agent": USER_AGENT}) as response:
        response.raise_for_status()
        try:
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        except (requests.RequestException, OSError):
            logger.error(f"❌ Download of {url} interrupted, removing {partial.name}")
            partial.unlink(missing_ok=True)
            raise
    partial.replace(dest)

    logger.success(f"  ✅ Saved {dest} ({dest.stat().st_size:,} bytes)")
    return dest


def extract_archive(archive: Union[str, Path], dest_dir: Union[str, Path]) -> List[Path]:
    """Unpack a zip archive into ``dest_dir``; returns the extracted file paths."""
    archive = Path(archive)
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    if not zipfile.is_zipfile(archive):
        raise ValueError(f"Not a zip archive: {archive}")

    with zipfile.ZipFile(archive) as zf:
        zf.extractall(dest_dir)
        names = [name for name in zf.namelist() if not name.endswith("/")]

    logger.info(f"  📂 Extracted {len(names)} files from {archive.name} into {dest_dir}")
    return [dest_dir / name for name in names]


def fetch_inputs(config: Config, overwrite: bool = False) -> Dict[str, Path]:
    """
    Download every configured input.

    Returns:
        Input key -> local path of the usable input file
    """
    downloads = config.get("downloads", {}) or {}
    timeout = config.get_system_setting("download_timeout")
    fetched: Dict[str, Path] = {}

    for key, entry in downloads.items():
        entry = entry or {}
        target = config.get_input_path(key)

        if target.exists() and not overwrite:
            logger.info(f"  📦 {key}: already present at {target}")
            fetched[key] = target
            continue

        url = entry.get("url")
        if not url:
            raise ValueError(f"No download URL configured for '{key}' (downloads.{key}.url)")

        archive = entry.get("archive")
        if archive:
            archive_path = download_file(url, config.project_root / archive, overwrite=overwrite, timeout=timeout)
            extract_archive(archive_path, target.parent)
            if not target.exists():
                raise FileNotFoundError(f"{archive_path.name} did not contain {target.name}")
        else:
            download_file(url, target, overwrite=overwrite, timeout=timeout)

        fetched[key] = target

    return fetched
