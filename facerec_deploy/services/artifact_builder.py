# facerec_deploy/services/artifact_builder.py
from __future__ import annotations

import logging
import shlex
import subprocess
import zipfile
from pathlib import Path
from typing import Optional, Sequence, Union

from facerec_deploy.errors import NotFound, ProviderError

logger = logging.getLogger(__name__)

BUILD_TIMEOUT_SECONDS = 900


def run_build(command: Union[str, Sequence[str]], cwd: Optional[str] = None,
              timeout: int = BUILD_TIMEOUT_SECONDS) -> None:
    """
    Run the external build step (e.g. ``dotnet publish -c Release -o dist``).

    The orchestrator never compiles anything itself; it only needs the
    directory or zip this command leaves behind.
    """
    argv = shlex.split(command) if isinstance(command, str) else list(command)
    logger.info("Running build: %s", " ".join(argv))
    try:
        subprocess.run(argv, cwd=cwd, check=True, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise NotFound(f"Build tool not found: {argv[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise ProviderError(f"Build timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        tail = (e.stderr or e.stdout or "").strip()[-2000:]
        raise ProviderError(f"Build failed with exit code {e.returncode}: {tail}") from e


def package_directory(directory: Union[str, Path], zip_path: Union[str, Path]) -> Path:
    """Zip the contents of a publish directory (paths relative to it)."""
    directory = Path(directory)
    zip_path = Path(zip_path)
    if not directory.is_dir():
        raise NotFound(f"Publish directory not found: {directory}")

    zip_path.parent.mkdir(parents=True, exist_ok=True)
    files = sorted(p for p in directory.rglob("*") if p.is_file() and p.resolve() != zip_path.resolve())
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zipf:
        for f in files:
            zipf.write(f, f.relative_to(directory).as_posix())
    logger.info("Packaged %d files into %s", len(files), zip_path)
    return zip_path


def read_artifact(path: Union[str, Path]) -> bytes:
    p = Path(path)
    if not p.is_file():
        raise NotFound(f"Function artifact not found: {p}")
    if not zipfile.is_zipfile(p):
        raise ProviderError(f"Function artifact is not a zip file: {p}")
    return p.read_bytes()


__all__ = ["run_build", "package_directory", "read_artifact"]
