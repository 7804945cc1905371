import contextlib
import os
import pathlib
import shutil
import signal
import subprocess
import tempfile
from typing import Dict, Iterator, List

from dosecrets import PrereqMissing, output

_tools: Dict[str, str] = {}


def find_tool(name: str, candidates: List[str], args=("--version",)) -> str:
    """Return the first of `candidates` that can be executed.

    Candidates are probed by running them with `args`. If `args` is None
    they are only looked up on the PATH. The lookup is cached per `name`.

    """
    if name in _tools:
        return _tools[name]
    with tempfile.TemporaryFile() as null:
        for candidate in candidates:
            output.annotate("Looking for `{}`".format(candidate), debug=True)
            if args is None:
                if shutil.which(candidate):
                    _tools[name] = candidate
                    return candidate
                continue
            try:
                subprocess.check_call(
                    [candidate] + list(args), stdout=null, stderr=null
                )
            except (subprocess.CalledProcessError, OSError):
                continue
            _tools[name] = candidate
            return candidate
    raise PrereqMissing.from_context(name)


@contextlib.contextmanager
def staged_file(target: pathlib.Path, mode: int = 0o600) -> Iterator:
    """Provide a temporary file next to `target`.

    The caller writes to the yielded file object. If the block finishes
    without an exception the file atomically replaces `target`. The
    temporary file is removed on every other exit path.

    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(
        prefix=".{}.".format(target.name), dir=str(target.parent)
    )
    staged = pathlib.Path(name)
    output.annotate("Staging {} in {}".format(target, staged), debug=True)
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            yield f
        os.replace(str(staged), str(target))
    finally:
        if staged.exists():
            staged.unlink()


def write_private(path: pathlib.Path, content: str):
    """Write `content` to a new file only readable by the owner."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    os.chmod(str(path), 0o600)


def _raise_exit(signum, frame):
    raise SystemExit(128 + signum)


@contextlib.contextmanager
def exit_on_signals(signals=(signal.SIGTERM, signal.SIGHUP)):
    """Turn termination signals into SystemExit.

    This lets `finally` clauses (like the cleanup in `staged_file`) run when
    the process is terminated.

    """
    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _raise_exit)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
