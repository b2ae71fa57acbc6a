"""Running-functions lookup for one keyset.

Answers "which function packages are running on this keyset" by walking
packages -> latest revision -> deployments of that revision, keeping only
deployments bound to the keyset in the RUNNING state.

Only the latest revision of a package is consulted: a package whose latest
revision is not running on the keyset contributes nothing, even when an
older revision is. Among the matching deployments, state filtering happens
before the recency tie-break.

Per-package lookups run concurrently and fail independently; a failure
for one package (HTTP error, timeout, malformed payload) only drops that
package. A failure listing the packages themselves yields no modules.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from admin_sdk.async_client import AsyncAdminClient
from admin_sdk.errors import ApiError
from admin_sdk.models import Deployment, Package, Revision
from admin_sdk.utils import newest_first
from usage_gateway.core.api.models import FunctionSummary, ModuleSummary

logger = logging.getLogger("usage_gateway.functions")

DEFAULT_PACKAGE_LIMIT = 100
DEFAULT_DEPLOYMENT_LIMIT = 100


def latest_running_deployment(
    deployments: List[Deployment], keyset_id: int
) -> Optional[Deployment]:
    """Most recent RUNNING deployment bound to ``keyset_id``, if any."""
    matching = [d for d in deployments if d.targets(keyset_id) and d.is_running]
    if not matching:
        return None
    return newest_first(matching)[0]


def build_module_summary(
    package: Package, revision: Revision, deployment: Deployment
) -> ModuleSummary:
    return ModuleSummary(
        package_id=package.id,
        package_name=package.name,
        revision_id=revision.id,
        revision_name=revision.name,
        deployment_id=deployment.id,
        deployment_state=deployment.state,
        functions=[
            FunctionSummary(
                id=fd.function_revision_id,
                name=fd.function_name,
                type=fd.function_type,
                enabled=fd.is_running,
            )
            for fd in deployment.function_deployments
        ],
    )


async def summarize_package(
    client: AsyncAdminClient,
    package: Package,
    keyset_id: int,
    *,
    deployment_limit: int = DEFAULT_DEPLOYMENT_LIMIT,
) -> Optional[ModuleSummary]:
    """Summary for one package, or None when it is not running on the keyset."""
    revisions = await client.list_revisions(package.id, limit=1)
    if not revisions:
        return None
    revision = newest_first(revisions)[0]

    deployments = await client.list_deployments(
        package.id, revision.id, limit=deployment_limit
    )
    deployment = latest_running_deployment(deployments, keyset_id)
    if deployment is None:
        return None
    return build_module_summary(package, revision, deployment)


async def _isolated_summary(
    client: AsyncAdminClient,
    package: Package,
    keyset_id: int,
    deployment_limit: int,
) -> Optional[ModuleSummary]:
    try:
        return await summarize_package(
            client, package, keyset_id, deployment_limit=deployment_limit
        )
    except ApiError as e:
        logger.warning(
            "functions package_id=%s skipped status=%s error=%s",
            package.id, e.status_code, e.message,
        )
    except (TypeError, ValueError) as e:
        logger.warning("functions package_id=%s skipped malformed=%s", package.id, e)
    return None


async def list_account_packages(
    client: AsyncAdminClient, *, limit: int = DEFAULT_PACKAGE_LIMIT
) -> List[Package]:
    """One page of the account's packages; a failed listing yields none."""
    try:
        return await client.list_packages(limit=limit)
    except ApiError as e:
        logger.warning(
            "functions package listing failed status=%s error=%s", e.status_code, e.message,
        )
        return []


async def aggregate_modules(
    client: AsyncAdminClient,
    keyset_id: int,
    *,
    package_limit: int = DEFAULT_PACKAGE_LIMIT,
    deployment_limit: int = DEFAULT_DEPLOYMENT_LIMIT,
    packages: Optional[List[Package]] = None,
) -> List[ModuleSummary]:
    """All packages whose latest revision is running on ``keyset_id``.

    Account scope comes from the client's session and delegated account.
    Only one page of ``package_limit`` packages is read. Callers checking
    several keysets of one account can pass ``packages`` (see
    :func:`list_account_packages`) to skip the listing.
    """
    if packages is None:
        packages = await list_account_packages(client, limit=package_limit)

    if not packages:
        return []

    results = await asyncio.gather(
        *(
            _isolated_summary(client, package, keyset_id, deployment_limit)
            for package in packages
        )
    )
    modules = [m for m in results if m is not None]
    logger.info(
        "functions keyset_id=%s packages=%d running_modules=%d",
        keyset_id, len(packages), len(modules),
    )
    return modules
