"""Device deployment orchestration.

Exports :class:`DeployCommandHelper` together with the collaborator
protocols it consumes and the descriptor types it produces.
"""

from micflow.deploy.helper import (
    AdditionalDeployOptions,
    BuildPlatformService,
    DeployCommandHelper,
    DeployController,
    DeviceDescriptor,
    DeviceService,
    ProjectData,
)

__all__ = [
    "AdditionalDeployOptions",
    "BuildPlatformService",
    "DeployCommandHelper",
    "DeployController",
    "DeviceDescriptor",
    "DeviceService",
    "ProjectData",
]
