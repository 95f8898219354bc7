"""Collect the local metrics configuration and templates for `metrics sync`."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
import logging
from pathlib import Path

from .client import ReSimError

logger = logging.getLogger(__name__)

METRICS_DIR = Path(".resim") / "metrics"
CONFIG_FILENAME = "config.yml"
TEMPLATES_DIRNAME = "templates"
TEMPLATE_SUFFIX = ".liquid"


@dataclass
class MetricsFiles:
    config: str
    templates: list[dict] = field(default_factory=list)

    @property
    def template_names(self) -> list[str]:
        return [t["name"] for t in self.templates]


def _read_b64(path: Path, what: str) -> str:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ReSimError("CONFIG", f"failed to read {what} {path}: {exc}", 0) from exc
    return base64.b64encode(data).decode("ascii")


def collect_metrics_files(root: Path) -> MetricsFiles:
    metrics_dir = root / METRICS_DIR
    config_path = metrics_dir / CONFIG_FILENAME
    logger.debug("Looking for metrics config at %s", config_path)
    if not config_path.is_file():
        raise ReSimError("CONFIG", f"failed to find ReSim metrics config at {config_path}. Are you in the right folder?", 0)
    files = MetricsFiles(config=_read_b64(config_path, "config file"))

    template_dir = metrics_dir / TEMPLATES_DIRNAME
    logger.debug("Looking for templates in %s", template_dir)
    try:
        entries = sorted(template_dir.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise ReSimError("CONFIG", f"failed to read templates dir {template_dir}: {exc}", 0) from exc

    for entry in entries:
        if entry.is_dir():
            logger.debug("Skipping directory %s", entry.name)
            continue
        if not entry.name.lower().endswith(TEMPLATE_SUFFIX):
            logger.debug("Skipping non %s file %s", TEMPLATE_SUFFIX, entry.name)
            continue
        logger.debug("Found template %s", entry.name)
        files.templates.append({"name": entry.name, "contents": _read_b64(entry, "template")})

    if not files.templates:
        logger.warning("Found 0 template files at %s", template_dir)
    return files
