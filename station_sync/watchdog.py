"""Process watchdog: restarts a dev server that stops answering its health URL."""

import logging
import subprocess
import time
from typing import Callable, List, Optional

import requests

from .errors import WatchdogError

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_URL = "http://localhost:8080/__sync/ping"
DEFAULT_COMMAND = ["npm", "run", "dev"]


class Watchdog:
    """
    Polls a health URL and restarts the supervised process when it fails.

    A health check makes up to max_retries attempts, retry_delay seconds
    apart; it passes when the response is 2xx with a JSON body whose
    "ok" is true. After a failed check the child is terminated and
    started again, and must pass a health check within startup_timeout
    seconds or the watchdog gives up with WatchdogError.
    """

    def __init__(
        self,
        health_url: str = DEFAULT_HEALTH_URL,
        command: Optional[List[str]] = None,
        check_interval: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        startup_timeout: float = 30.0,
        request_timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.health_url = health_url
        self.command = command or list(DEFAULT_COMMAND)
        self.check_interval = check_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.startup_timeout = startup_timeout
        self.request_timeout = request_timeout
        self._session = session or requests.Session()
        self._popen = popen
        self._sleep = sleep
        self._clock = clock
        self.process: Optional[subprocess.Popen] = None
        self.restart_count = 0
        self.last_healthy: Optional[float] = None

    def _probe(self) -> bool:
        try:
            response = self._session.get(self.health_url, timeout=self.request_timeout)
        except requests.exceptions.RequestException as e:
            logger.debug(f"Health probe failed: {e}")
            return False
        if not response.ok:
            return False
        try:
            return bool(response.json().get("ok"))
        except (ValueError, AttributeError):
            return False

    def check_health(self) -> bool:
        """Run one health check with retries."""
        for attempt in range(1, self.max_retries + 1):
            if self._probe():
                self.last_healthy = self._clock()
                return True
            if attempt < self.max_retries:
                logger.warning(
                    f"Health check attempt {attempt}/{self.max_retries} failed, "
                    f"retrying in {self.retry_delay:.0f}s"
                )
                self._sleep(self.retry_delay)
        return False

    def stop_process(self) -> None:
        """Terminate the supervised process if we started one."""
        if self.process is None:
            return
        if self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                logger.warning("Process did not exit after terminate, killing it")
                self.process.kill()
                self.process.wait()
        self.process = None

    def start_process(self) -> None:
        """
        Start the supervised command and wait until it is healthy.

        Raises:
            WatchdogError: the process exited or missed the startup timeout
        """
        self.restart_count += 1
        logger.info(f"Starting {' '.join(self.command)} (restart #{self.restart_count})")
        try:
            self.process = self._popen(self.command)
        except OSError as e:
            raise WatchdogError(f"Cannot start {self.command[0]}: {e}") from e

        deadline = self._clock() + self.startup_timeout
        while self._clock() < deadline:
            code = self.process.poll()
            if code is not None:
                self.process = None
                raise WatchdogError(f"Process exited with code {code} during startup")
            if self._probe():
                self.last_healthy = self._clock()
                logger.info("Process started successfully")
                return
            self._sleep(1.0)

        self.stop_process()
        raise WatchdogError(f"Process not healthy within {self.startup_timeout:.0f}s startup timeout")

    def restart(self) -> None:
        logger.warning("Server is not responding, restarting")
        self.stop_process()
        self._sleep(2.0)
        self.start_process()

    def run(self, max_cycles: Optional[int] = None) -> None:
        """
        Supervise until interrupted.

        Args:
            max_cycles: Stop after this many health checks (runs forever when None)
        """
        logger.info(f"Watchdog monitoring {self.health_url} every {self.check_interval:.0f}s")
        cycles = 0
        try:
            while max_cycles is None or cycles < max_cycles:
                cycles += 1
                if self.check_health():
                    logger.info("Server healthy")
                else:
                    self.restart()
                self._sleep(self.check_interval)
        except KeyboardInterrupt:
            logger.info("Watchdog stopped")
        finally:
            self.stop_process()
