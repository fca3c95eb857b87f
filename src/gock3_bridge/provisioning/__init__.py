"""Worker executable provisioning."""

from gock3_bridge.provisioning.platforms import (
    DEFAULT_DOWNLOAD_BASE_URL,
    PlatformId,
    PlatformVariant,
    current_os_id,
    require,
    resolve,
)
from gock3_bridge.provisioning.provisioner import ProvisionedExecutable, Provisioner
from gock3_bridge.provisioning.store import ExecutableStore

__all__ = [
    "DEFAULT_DOWNLOAD_BASE_URL",
    "ExecutableStore",
    "PlatformId",
    "PlatformVariant",
    "ProvisionedExecutable",
    "Provisioner",
    "current_os_id",
    "require",
    "resolve",
]
