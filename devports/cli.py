"""
devports - port and development service toolkit

Check which process owns a TCP port, free ports by killing their occupants,
run development services, and check the ports a project needs.

Usage:
    devports ports                    # Scan the common development ports
    devports ports -p 3000            # Check a single port
    devports ports -p 3000 -k         # Kill whatever is listening on 3000
    devports ports -r 3000-3010       # Scan an inclusive range
    devports ports --json             # Machine-readable output
    devports services --list          # Show available services
    devports services --start dev     # Run the dev server until Ctrl+C
    devports doctor                   # Port availability for this project

Environment Variables:
    - DEVPORTS_DEFAULT_PORTS: JSON list of ports scanned by `devports ports`
    - DEVPORTS_COMMAND_TIMEOUT: seconds to wait for lsof/netstat/taskkill (default: no limit)
    - DEVPORTS_LOG_LEVEL: logging level (default: warning)
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from devports import __version__
from devports.config import configure_logging, settings
from devports.core.prober import parse_port
from devports.core.reclaimer import ReclamationController
from devports.doctor import check_project_ports
from devports.exceptions import DevPortsError, InvalidPortError, ServiceError
from devports.models import PortRange, PortResult, PortState, PortStatus, TerminationOutcome
from devports.services import SERVICES, ServiceManager, SignalHandler, detect_package_manager

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


# ANSI color codes
class Color:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BLUE = '\033[34m'
    CYAN = '\033[36m'
    GRAY = '\033[90m'


# ============================================================================
# Output
# ============================================================================

class Reporter:
    """Renders core records as colored text."""

    def __init__(self, color_enabled: bool = True):
        self.color_enabled = color_enabled

    def _colorize(self, text: str, color: str) -> str:
        """Apply color to text if colors are enabled."""
        if not self.color_enabled:
            return text
        return f"{color}{text}{Color.RESET}"

    def heading(self, message: str) -> None:
        print(self._colorize(message, Color.BLUE + Color.BOLD))

    def ok(self, message: str) -> None:
        print(f"{self._colorize('✅', Color.GREEN)} {message}")

    def warn(self, message: str) -> None:
        print(f"{self._colorize('⚠️ ', Color.YELLOW)} {message}")

    def error(self, message: str) -> None:
        print(f"{self._colorize('❌', Color.RED)} {message}")

    def info(self, message: str) -> None:
        print(f"{self._colorize('ℹ️ ', Color.BLUE)} {message}")

    def port_result(self, result: PortResult) -> None:
        if isinstance(result, TerminationOutcome):
            who = f"{result.occupant.process_name} (PID {result.pid})"
            if result.succeeded:
                self.ok(f"Port {result.port}: killed {who}, port is now available")
            elif result.error:
                self.error(f"Port {result.port}: failed to kill {who}: {result.error}")
            else:
                self.error(f"Port {result.port}: killed {who} but the port is still {result.verification.state.value}")
            return

        if result.state == PortState.FREE:
            self.ok(f"Port {result.port}: Available")
        elif result.state == PortState.OCCUPIED:
            if result.occupant:
                self.warn(f"Port {result.port}: {result.occupant.process_name} (PID {result.occupant.pid})")
            else:
                self.warn(f"Port {result.port}: Unknown process")
        else:
            self.warn(f"Port {result.port}: could not be checked ({result.error})")

    def port_results(self, results: list[PortResult]) -> None:
        print("Port Status:")
        print("─" * 50)
        for result in results:
            self.port_result(result)


def result_to_dict(result: PortResult) -> dict:
    kind = "termination" if isinstance(result, TerminationOutcome) else "status"
    return {"kind": kind, **result.model_dump(mode="json")}


def print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2))


# ============================================================================
# Commands
# ============================================================================

def run_ports(args: argparse.Namespace, reporter: Reporter, controller: ReclamationController | None = None) -> int:
    """`devports ports`: probe, identify and optionally kill."""
    controller = controller or ReclamationController()

    if args.port is not None:
        target = parse_port(args.port)
        description = f"port {target}"
        results = controller.reclaim(target, kill=args.kill)
    elif args.range is not None:
        target_range = PortRange.parse(args.range)
        description = f"ports {target_range}"
        results = controller.reclaim(target_range, kill=args.kill)
    else:
        description = "common development ports"
        results = controller.reclaim_ports(settings.default_ports, kill=args.kill)

    if args.json:
        print_json([result_to_dict(r) for r in results])
    else:
        reporter.heading("🔌 devports - Port Manager\n")
        print(f"Checking {description}...\n")
        reporter.port_results(results)
        _print_ports_summary(results, args.kill, reporter)

    return EXIT_FAILED if _kill_failed(results, args.kill) else EXIT_OK


def _kill_failed(results: list[PortResult], kill: bool) -> bool:
    if not kill:
        return False
    for result in results:
        if isinstance(result, TerminationOutcome) and not result.succeeded:
            return True
        if isinstance(result, PortStatus) and result.is_occupied:
            return True
    return False


def _print_ports_summary(results: list[PortResult], kill: bool, reporter: Reporter) -> None:
    in_use = [
        r for r in results
        if (isinstance(r, PortStatus) and r.is_occupied)
        or (isinstance(r, TerminationOutcome) and not r.succeeded)
    ]
    if not in_use:
        print()
        reporter.ok("All checked ports are available")
        return

    print()
    reporter.warn(f"{len(in_use)} port(s) in use")
    if kill:
        reporter.error("Some ports could not be freed. You may need elevated privileges.")
    else:
        print("Use -k to kill the processes: devports ports -k")


async def run_services(args: argparse.Namespace, reporter: Reporter) -> int:
    """`devports services`: list the catalog or run services in the foreground."""
    project_dir = Path(args.dir)
    if args.list:
        package_manager = detect_package_manager(project_dir)
        reporter.info(f"Package manager: {package_manager}")
        print()
        for key, service in SERVICES.items():
            ports = f"  ports: {', '.join(map(str, service.ports))}" if service.ports else ""
            print(f"  {key:<10} {service.name} - {service.description}")
            print(f"  {'':<10} {service.command_for(package_manager)}{ports}")
        return EXIT_OK

    manager = ServiceManager(project_dir=project_dir)
    reporter.info(f"Package manager: {manager.package_manager}")
    signal_handler = SignalHandler(manager)
    signal_handler.setup()

    try:
        for name in args.start:
            if args.free_ports:
                results = await manager.free_ports(name)
                if results:
                    reporter.port_results(results)
            record = await manager.start(name)
            reporter.info(f"Started {SERVICES[name].name} (PID {record.pid}): {record.command}")

        waiters = asyncio.ensure_future(
            asyncio.gather(*(manager.wait(name) for name in manager.table.names()))
        )
        shutdown = asyncio.ensure_future(signal_handler.wait_for_shutdown())
        done, pending = await asyncio.wait({waiters, shutdown}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if shutdown in done:
            print()
            reporter.warn("Shutting down services...")
    finally:
        await signal_handler.shutdown()

    return EXIT_OK


def run_doctor(args: argparse.Namespace, reporter: Reporter, controller: ReclamationController | None = None) -> int:
    """`devports doctor`: ports for the detected project type."""
    project_type, results = check_project_ports(Path(args.dir), controller)

    if args.json:
        print_json({
            "project_type": project_type,
            "ports": [result_to_dict(r) for r in results],
        })
        return EXIT_OK

    reporter.heading("🩺 devports - Port Availability\n")
    reporter.info(f"Project type detected: {project_type}")
    print()
    for result in results:
        if isinstance(result, PortStatus) and result.is_free:
            reporter.ok(f"Port {result.port} available")
        elif isinstance(result, PortStatus) and result.is_occupied:
            owner = f" by {result.occupant.process_name} (PID {result.occupant.pid})" if result.occupant else ""
            reporter.warn(f"Port {result.port} in use{owner}")
        else:
            reporter.port_result(result)
    return EXIT_OK


# ============================================================================
# Argument parsing
# ============================================================================

def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog='devports',
        description='Check and free TCP ports, and manage development services',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  devports ports                   # Scan common development ports
  devports ports -p 3000 -k        # Free port 3000
  devports ports -r 3000-3010      # Scan a range
  devports services --start dev    # Run the dev server until Ctrl+C
  devports doctor                  # Check the ports this project uses
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable colored output'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    ports = subparsers.add_parser('ports', help='Check and manage port usage')
    target_group = ports.add_mutually_exclusive_group()
    target_group.add_argument(
        '--port', '-p',
        default=None,
        help='Check a specific port'
    )
    target_group.add_argument(
        '--range', '-r',
        default=None,
        metavar='START-END',
        help='Check an inclusive range of ports'
    )
    ports.add_argument(
        '--kill', '-k',
        action='store_true',
        help='Kill processes using the ports'
    )
    ports.add_argument(
        '--json',
        action='store_true',
        help='Output results as JSON'
    )

    services = subparsers.add_parser('services', help='Run development services')
    action_group = services.add_mutually_exclusive_group(required=True)
    action_group.add_argument(
        '--start', '-s',
        action='append',
        choices=sorted(SERVICES),
        metavar='SERVICE',
        help=f'Start a service and wait for it (repeatable): {", ".join(SERVICES)}'
    )
    action_group.add_argument(
        '--list', '-l',
        action='store_true',
        help='List available services'
    )
    services.add_argument(
        '--free-ports',
        action='store_true',
        help="Kill processes holding a service's ports before starting it"
    )
    services.add_argument(
        '--dir',
        default='.',
        help='Project directory (default: current directory)'
    )

    doctor = subparsers.add_parser('doctor', help='Check port availability for this project')
    doctor.add_argument(
        '--dir',
        default='.',
        help='Project directory (default: current directory)'
    )
    doctor.add_argument(
        '--json',
        action='store_true',
        help='Output results as JSON'
    )

    return parser


# ============================================================================
# Main Entry Point
# ============================================================================

def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    configure_logging('debug' if args.verbose else None)
    reporter = Reporter(color_enabled=not args.no_color and sys.stdout.isatty())

    try:
        if args.command == 'ports':
            return run_ports(args, reporter)
        if args.command == 'services':
            return asyncio.run(run_services(args, reporter))
        if args.command == 'doctor':
            return run_doctor(args, reporter)
    except (InvalidPortError, ServiceError) as e:
        reporter.error(str(e))
        return EXIT_USAGE
    except DevPortsError as e:
        reporter.error(str(e))
        return EXIT_FAILED
    except KeyboardInterrupt:
        return EXIT_OK

    parser.error(f"unknown command {args.command}")
    return EXIT_USAGE


if __name__ == '__main__':
    sys.exit(main())
