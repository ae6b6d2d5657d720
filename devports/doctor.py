"""Port availability check for the project in a directory.

Detects the JavaScript project type from package.json dependencies or marker
files and scans the ports that type conventionally uses.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from devports.core.reclaimer import ReclamationController
from devports.models import PortResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectType:
    deps: tuple[str, ...]
    ports: tuple[int, ...]
    files: tuple[str, ...] = ()


# Meta-frameworks come before the libraries they depend on; first match wins
PROJECT_TYPES: dict[str, ProjectType] = {
    "next": ProjectType(deps=("next",), ports=(3000,), files=("next.config.js", "next.config.mjs")),
    "nuxt": ProjectType(deps=("nuxt",), ports=(3000,), files=("nuxt.config.js", "nuxt.config.ts")),
    "nest": ProjectType(deps=("@nestjs/core",), ports=(3000,), files=("nest-cli.json",)),
    "svelte": ProjectType(deps=("svelte",), ports=(5173,), files=("svelte.config.js",)),
    "vue": ProjectType(deps=("vue",), ports=(5173, 3000)),
    "react": ProjectType(deps=("react",), ports=(3000,)),
    "vite": ProjectType(deps=("vite",), ports=(5173, 3000), files=("vite.config.js", "vite.config.ts")),
    "express": ProjectType(deps=("express",), ports=(3000, 8000, 7531)),
    "fastify": ProjectType(deps=("fastify",), ports=(3000, 8080)),
}

UNKNOWN_PROJECT = "unknown"
FALLBACK_PORTS = (3000, 8000, 8080, 5173, 4000)


def detect_project_type(project_dir: Path) -> str:
    """Return the PROJECT_TYPES key matching *project_dir*, or "unknown".

    Dependencies are matched first across all types, then marker files.
    A directory without a readable package.json is "unknown".
    """
    package_path = project_dir / "package.json"
    if not package_path.exists():
        return UNKNOWN_PROJECT

    try:
        package = json.loads(package_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Could not read %s: %s", package_path, e)
        return UNKNOWN_PROJECT
    if not isinstance(package, dict):
        return UNKNOWN_PROJECT

    all_deps = {}
    for section in ("dependencies", "devDependencies"):
        deps = package.get(section)
        if isinstance(deps, dict):
            all_deps.update(deps)

    for name, project_type in PROJECT_TYPES.items():
        if any(dep in all_deps for dep in project_type.deps):
            return name
    for name, project_type in PROJECT_TYPES.items():
        if any((project_dir / marker).exists() for marker in project_type.files):
            return name
    return UNKNOWN_PROJECT


def ports_for_project(project_type: str) -> list[int]:
    if project_type in PROJECT_TYPES:
        return list(PROJECT_TYPES[project_type].ports)
    return list(FALLBACK_PORTS)


def check_project_ports(
    project_dir: Path,
    controller: ReclamationController | None = None,
) -> tuple[str, list[PortResult]]:
    """Detect the project type and report on its ports without killing anything."""
    project_type = detect_project_type(project_dir)
    ports = ports_for_project(project_type)
    logger.info("Project type %s, checking ports %s", project_type, ports)
    controller = controller or ReclamationController()
    return project_type, controller.reclaim_ports(ports, kill=False)
