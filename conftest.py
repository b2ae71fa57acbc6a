"""Repo-wide test fixtures.

Snapshots and restores gateway environment variables between tests so a
test that sets one cannot leak configuration into the next.
"""

from __future__ import annotations

import os

import pytest

_ENV_PREFIX = "USAGE_GATEWAY_"


@pytest.fixture(autouse=True)
def _restore_env():
    """Snapshot USAGE_GATEWAY_* env vars before each test and restore after."""
    snapshot = {k: v for k, v in os.environ.items() if k.startswith(_ENV_PREFIX)}

    yield

    # Restore: remove any that were added, reset any that changed
    for var in [k for k in os.environ if k.startswith(_ENV_PREFIX)]:
        if var not in snapshot:
            os.environ.pop(var, None)
    os.environ.update(snapshot)
