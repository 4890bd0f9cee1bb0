import logging
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from activity_schema import ActivityEvent, Heartbeat

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """A record could not be handed to the telemetry sink."""


class DeliveryAdapter(ABC):
    """Downstream boundary that stores or forwards finished records."""

    @abstractmethod
    def deliver_event(self, event: ActivityEvent) -> None:
        ...

    @abstractmethod
    def deliver_heartbeat(self, heartbeat: Heartbeat) -> None:
        ...

    def close(self) -> None:
        return None


class CliDelivery(DeliveryAdapter):
    """Hands records to the external telemetry binary, one process per record."""

    def __init__(
        self,
        binary_path: str,
        *,
        db_path: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.binary_path = binary_path
        self.db_path = db_path
        self.timeout = timeout

    def initialize_database(self) -> None:
        """One-time call that lets the binary create its local store."""
        if not self.db_path:
            return
        logger.info("Initializing telemetry database at %s", self.db_path)
        self._run(["--db", self.db_path])

    def deliver_event(self, event: ActivityEvent) -> None:
        self._run(self._with_db(event.to_cli_args()))

    def deliver_heartbeat(self, heartbeat: Heartbeat) -> None:
        self._run(self._with_db(heartbeat.to_cli_args()))

    def _with_db(self, args: List[str]) -> List[str]:
        if not self.db_path:
            return args
        return ["--db", self.db_path, *args]

    def _run(self, args: Sequence[str]) -> None:
        command = [self.binary_path, *args]
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise DeliveryError(f"{args[0]} exited with {exc.returncode}: {stderr}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DeliveryError(f"{args[0]} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise DeliveryError(f"Cannot run {self.binary_path}: {exc}") from exc

        if result.stderr and result.stderr.strip():
            logger.warning("CLI stderr: %s", result.stderr.strip())
        if result.stdout and result.stdout.strip():
            logger.debug("CLI output: %s", result.stdout.strip())


__all__ = ["CliDelivery", "DeliveryAdapter", "DeliveryError"]
