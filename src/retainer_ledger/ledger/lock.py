"""Advisory lock serializing reconciliation runs against one ledger."""

import os
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

import structlog

from retainer_ledger.errors import RunLockedError

logger = structlog.get_logger(__name__)


class RunLock:
    """Exclusive lock file created with ``O_CREAT | O_EXCL``.

    The lock is advisory: it only keeps out other runs that use it too.
    A lock left behind by a crashed run must be removed by an operator.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            holder = self._read_holder()
            raise RunLockedError(f"Reconciliation already running ({holder})") from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"pid={os.getpid()} started={datetime.now(UTC).isoformat()}\n")
        self._held = True
        logger.debug("run_lock_acquired", path=str(self._path))

    def release(self) -> None:
        if not self._held:
            return
        self._path.unlink(missing_ok=True)
        self._held = False
        logger.debug("run_lock_released", path=str(self._path))

    def _read_holder(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8").strip() or "unknown holder"
        except OSError:
            return "unknown holder"

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
