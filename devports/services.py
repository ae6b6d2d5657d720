"""Development service manager.

Starts package-manager scripts (dev server, build, tests, ...) as child
processes and keeps track of them in a ProcessTable owned by the manager
instance. Shutdown code receives the manager explicitly; there is no
module-level registry of children.
"""

import asyncio
import logging
import os
import platform
import shlex
import shutil
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel

from devports.config import settings
from devports.core.reclaimer import ReclamationController
from devports.exceptions import ServiceAlreadyRunningError, ServiceError, UnknownServiceError
from devports.models import PortResult

logger = logging.getLogger(__name__)


# ============================================================================
# Service catalog
# ============================================================================

@dataclass(frozen=True)
class ServiceDefinition:
    """A named command with per-package-manager variants."""

    key: str
    name: str
    description: str
    commands: dict[str, str]
    ports: tuple[int, ...] = ()

    def command_for(self, package_manager: str) -> str:
        return self.commands.get(package_manager, self.commands["npm"])


SERVICES: dict[str, ServiceDefinition] = {
    "dev": ServiceDefinition(
        key="dev",
        name="Development Server",
        description="Start the development server",
        commands={"npm": "npm run dev", "yarn": "yarn dev", "pnpm": "pnpm dev"},
        ports=(3000, 5173, 8000),
    ),
    "build": ServiceDefinition(
        key="build",
        name="Build Process",
        description="Build the project for production",
        commands={"npm": "npm run build", "yarn": "yarn build", "pnpm": "pnpm build"},
    ),
    "test": ServiceDefinition(
        key="test",
        name="Test Runner",
        description="Run the test suite",
        commands={"npm": "npm test", "yarn": "yarn test", "pnpm": "pnpm test"},
    ),
    "lint": ServiceDefinition(
        key="lint",
        name="Linter",
        description="Run code linting",
        commands={"npm": "npm run lint", "yarn": "yarn lint", "pnpm": "pnpm lint"},
    ),
    "typecheck": ServiceDefinition(
        key="typecheck",
        name="Type Checker",
        description="Run TypeScript type checking",
        commands={
            "npm": "npx tsc --noEmit",
            "yarn": "yarn tsc --noEmit",
            "pnpm": "pnpm tsc --noEmit",
        },
    ),
}

# Lock file -> package manager, first match wins
LOCK_FILES = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
]


def detect_package_manager(project_dir: Path) -> str:
    """Detect npm/yarn/pnpm from lock files; defaults to npm."""
    for lock_file, manager in LOCK_FILES:
        if (project_dir / lock_file).exists():
            return manager
    return "npm"


def get_service(name: str) -> ServiceDefinition:
    try:
        return SERVICES[name]
    except KeyError:
        raise UnknownServiceError(name) from None


# ============================================================================
# Process table
# ============================================================================

@dataclass
class ServiceRecord:
    """A running child process started by a ServiceManager."""

    name: str
    pid: int
    command: str
    started_at: float
    process: asyncio.subprocess.Process = field(repr=False)

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    def uptime(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.started_at


class ProcessTable:
    """Running services keyed by service name."""

    def __init__(self):
        self._entries: dict[str, ServiceRecord] = {}

    def add(self, record: ServiceRecord) -> None:
        self._entries[record.name] = record

    def get(self, name: str) -> ServiceRecord | None:
        return self._entries.get(name)

    def remove(self, name: str) -> ServiceRecord | None:
        return self._entries.pop(name, None)

    def names(self) -> list[str]:
        return list(self._entries)

    def pids(self) -> set[int]:
        return {record.pid for record in self._entries.values() if record.is_running}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries.values()))


class ServiceStatus(BaseModel):
    """Listing entry for a running service."""

    name: str
    display_name: str
    pid: int
    command: str
    uptime_seconds: int
    running: bool


# ============================================================================
# ServiceManager
# ============================================================================

class ServiceManager:
    """Manages the lifecycle of development services."""

    def __init__(
        self,
        project_dir: Path | None = None,
        package_manager: str | None = None,
        controller: ReclamationController | None = None,
        shutdown_timeout: float | None = None,
        restart_delay: float | None = None,
        silent: bool = False,
    ):
        self.project_dir = (project_dir or Path.cwd()).resolve()
        self.package_manager = package_manager or detect_package_manager(self.project_dir)
        self.controller = controller
        self.shutdown_timeout = (
            settings.shutdown_timeout if shutdown_timeout is None else shutdown_timeout
        )
        self.restart_delay = settings.restart_delay if restart_delay is None else restart_delay
        self.silent = silent
        self.table = ProcessTable()
        self._watchers: dict[str, asyncio.Task] = {}

    async def free_ports(self, name: str) -> list[PortResult]:
        """Reclaim the ports a service needs, sparing our own children."""
        service = get_service(name)
        if not service.ports:
            return []
        if self.controller is None:
            self.controller = ReclamationController()
        return await asyncio.to_thread(
            self.controller.reclaim_ports, list(service.ports), True, self.table.pids()
        )

    async def start(self, name: str) -> ServiceRecord:
        """Start a service as a child process in its own session."""
        service = get_service(name)
        existing = self.table.get(name)
        if existing is not None and existing.is_running:
            raise ServiceAlreadyRunningError(name, existing.pid)

        command = service.command_for(self.package_manager)
        argv = shlex.split(command)
        executable = shutil.which(argv[0])
        if executable is None:
            raise ServiceError(f"Cannot start {service.name}: '{argv[0]}' not found on PATH")

        logger.info("Starting %s: %s", service.name, command)
        output = asyncio.subprocess.DEVNULL if self.silent else None
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *argv[1:],
                stdout=output,
                stderr=output,
                cwd=str(self.project_dir),
                start_new_session=True,
            )
        except OSError as e:
            raise ServiceError(f"Failed to start {service.name}: {e}") from e

        record = ServiceRecord(
            name=name,
            pid=process.pid,
            command=command,
            started_at=time.time(),
            process=process,
        )
        self.table.add(record)
        self._watchers[name] = asyncio.create_task(self._watch(record))
        return record

    async def _watch(self, record: ServiceRecord) -> None:
        """Drop a service from the table once its process exits."""
        code = await record.process.wait()
        if self.table.get(record.name) is record:
            self.table.remove(record.name)
            if code != 0 and not self.silent:
                logger.warning("%s exited with code %d", get_service(record.name).name, code)
        if self._watchers.get(record.name) is asyncio.current_task():
            del self._watchers[record.name]

    async def wait(self, name: str) -> int | None:
        """Wait for a running service to exit and return its exit code."""
        record = self.table.get(name)
        if record is None:
            return None
        return await record.process.wait()

    async def stop(self, name: str) -> bool:
        """Stop a service; returns False if it was not running."""
        record = self.table.remove(name)
        if record is None:
            logger.warning("Service %s is not running", name)
            return False

        watcher = self._watchers.pop(name, None)
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)

        await self._stop_process(record)
        return True

    async def _stop_process(self, record: ServiceRecord) -> None:
        """Stop a process and its entire process group."""
        process = record.process
        if process.returncode is not None:
            return

        logger.info("Stopping %s (PID %d)", record.name, record.pid)
        try:
            self._signal_group(process, graceful=True)
            try:
                await asyncio.wait_for(process.wait(), timeout=self.shutdown_timeout)
                logger.info("%s stopped", record.name)
            except asyncio.TimeoutError:
                logger.warning("%s did not exit in %ss, force killing", record.name, self.shutdown_timeout)
                self._signal_group(process, graceful=False)
                await process.wait()
        except ProcessLookupError:
            # Already gone
            pass

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, graceful: bool) -> None:
        try:
            if platform.system() != "Windows":
                sig = signal.SIGTERM if graceful else signal.SIGKILL
                os.killpg(process.pid, sig)
                return
        except (ProcessLookupError, PermissionError, OSError):
            pass
        if graceful:
            process.terminate()
        else:
            process.kill()

    async def restart(self, name: str) -> ServiceRecord:
        """Stop (if running), pause, and start again."""
        get_service(name)
        await self.stop(name)
        await asyncio.sleep(self.restart_delay)
        return await self.start(name)

    def list_services(self) -> list[ServiceStatus]:
        now = time.time()
        return [
            ServiceStatus(
                name=record.name,
                display_name=get_service(record.name).name,
                pid=record.pid,
                command=record.command,
                uptime_seconds=round(record.uptime(now)),
                running=record.is_running,
            )
            for record in self.table
        ]

    async def stop_all(self) -> None:
        """Stop every service in the table."""
        for name in self.table.names():
            await self.stop(name)


# ============================================================================
# SignalHandler
# ============================================================================

class SignalHandler:
    """Turns SIGINT/SIGTERM into a shutdown event for the service manager."""

    def __init__(self, service_manager: ServiceManager):
        self.service_manager = service_manager
        self.shutdown_event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    def setup(self) -> None:
        """Install handlers; must be called with the event loop running."""
        self._loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._loop.add_signal_handler(sig, self.shutdown_event.set)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(sig, self._handle_signal)

    def _handle_signal(self, signum, frame) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.shutdown_event.set)

    async def wait_for_shutdown(self) -> None:
        await self.shutdown_event.wait()

    async def shutdown(self) -> None:
        """Stop every child the service manager started."""
        await self.service_manager.stop_all()
