"""Version metadata reported by the CLI and the /status endpoint."""

from __future__ import annotations

import os

SERVICE_NAME = "psqlledger"
VERSION = "0.1.0"
# Injected by the build pipeline; "dev" for local checkouts.
GIT_COMMIT = os.getenv("PSQLLEDGER_GIT_COMMIT", "dev")


def full_version() -> str:
    return f"v{VERSION}-{GIT_COMMIT[:8]}"


__all__ = ["SERVICE_NAME", "VERSION", "GIT_COMMIT", "full_version"]
