"""Output formatters for the CLI.

Two disciplines: human-readable prose (the default) and CI mode, where stdout
carries nothing but ``key=value`` lines for a workflow runner to capture.
"""

from __future__ import annotations

import json

from .client import ReSimError


def format_json(data) -> str:
    """Full JSON passthrough."""
    return json.dumps(data, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# CI mode
# ---------------------------------------------------------------------------

def format_ci(pairs: dict[str, object]) -> str:
    """Render ``key=value`` lines, one per pair, newline-terminated."""
    lines = []
    for key, value in pairs.items():
        text = "" if value is None else str(value)
        if "\n" in text:
            raise ReSimError("INVALID_RESPONSE", f"CI output value for {key} spans multiple lines", 0)
        lines.append(f"{key}={text}")
    return "".join(f"{line}\n" for line in lines)


# ---------------------------------------------------------------------------
# Human mode
# ---------------------------------------------------------------------------

def format_created(entity: str, fields: list[tuple[str, object]], footer: str | None = None) -> str:
    lines = [f"Created {entity} successfully!"]
    for label, value in fields:
        lines.append(f"{label}: {value}")
    if footer:
        lines.append(footer)
    return "\n".join(lines)


def format_metrics_sync(template_names: list[str]) -> str:
    if not template_names:
        return "Successfully synced metrics config (no templates)"
    lines = ["Successfully synced metrics config, and the following templates:"]
    for name in template_names:
        lines.append(f"\t{name}")
    return "\n".join(lines)
