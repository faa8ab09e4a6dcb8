from __future__ import annotations

import os
import signal
import subprocess
import zipfile
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from android_build_pipeline.core import (
    BuildToolInvocationError,
    make_executable,
    reset_dir,
    safe_unlink,
)
from android_build_pipeline.core.http import HttpFetchError, stream_get_to_file

log = structlog.get_logger(__name__)

ASSEMBLE_TASKS = ("clean", "assembleDebug")

# Pinned wrapper: full flag set.
WRAPPER_FLAGS = ("--no-daemon", "--parallel", "--build-cache")

# Fallback Gradle install: reduced flag set.
INSTALLED_FLAGS = ("--no-daemon",)


@dataclass(frozen=True, slots=True)
class GradleCommand:
    argv: tuple[str, ...]
    uses_wrapper: bool
    gradle_version: str | None = None


def find_wrapper(project_dir: Path) -> Path | None:
    wrapper = project_dir / "gradlew"
    return wrapper if wrapper.is_file() else None


def wrapper_command(wrapper: Path) -> GradleCommand:
    make_executable(wrapper)
    return GradleCommand(
        argv=(str(wrapper.resolve()), *ASSEMBLE_TASKS, *WRAPPER_FLAGS),
        uses_wrapper=True,
    )


def installed_command(gradle_bin: Path, *, version: str) -> GradleCommand:
    return GradleCommand(
        argv=(str(gradle_bin.resolve()), *ASSEMBLE_TASKS, *INSTALLED_FLAGS),
        uses_wrapper=False,
        gradle_version=version,
    )


def distribution_url(base_url: str, version: str) -> str:
    return f"{base_url.rstrip('/')}/gradle-{version}-bin.zip"


def install_gradle(
    client: httpx.Client,
    *,
    version: str,
    base_url: str,
    dest_root: Path,
) -> Path:
    """
    Download and unpack gradle-{version}-bin.zip under dest_root and return
    the path of its `bin/gradle` launcher. An earlier install is reused.
    """
    home = dest_root / f"gradle-{version}"
    gradle_bin = home / "bin" / "gradle"
    if gradle_bin.is_file():
        make_executable(gradle_bin)
        return gradle_bin

    url = distribution_url(base_url, version)
    dest_root.mkdir(parents=True, exist_ok=True)
    archive = dest_root / f".gradle-{version}-bin.{os.getpid()}.zip"

    log.info("gradle.install", version=version, url=url, dest=str(home))
    try:
        stream_get_to_file(client, url=url, dest_path=archive, max_attempts=3)
        if home.exists():
            reset_dir(home)
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(dest_root)
    except (HttpFetchError, zipfile.BadZipFile, OSError) as e:
        raise BuildToolInvocationError(
            f"Could not install Gradle {version} from {url}: {e}"
        ) from e
    finally:
        safe_unlink(archive)

    if not gradle_bin.is_file():
        raise BuildToolInvocationError(
            f"Gradle {version} distribution has no bin/gradle launcher"
        )
    make_executable(gradle_bin)
    return gradle_bin


def _kill_session(proc: subprocess.Popen[bytes]) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    proc.wait()


def run_gradle(
    cmd: GradleCommand,
    *,
    cwd: Path,
    log_path: Path,
    timeout_s: float | None = None,
) -> int:
    """
    Run Gradle with output appended to log_path and return its exit code.
    Death by signal N is reported as 128+N, like a shell would.

    Raises subprocess.TimeoutExpired when timeout_s elapses.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("ab") as out:
        out.write(f"$ {' '.join(cmd.argv)}\n".encode("utf-8"))
        out.flush()
        try:
            proc = subprocess.Popen(
                list(cmd.argv),
                cwd=str(cwd),
                stdout=out,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise BuildToolInvocationError(f"Cannot start {cmd.argv[0]}: {e}") from e

        try:
            rc = proc.wait(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            # Gradle daemons and wrapper children share the session.
            _kill_session(proc)
            raise

    return 128 - rc if rc < 0 else rc
