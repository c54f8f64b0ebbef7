"""Deploy command helper -- map discovered devices to deployment descriptors.

:class:`DeployCommandHelper` is the glue behind a ``deploy`` command of a
mobile tooling CLI.  It initialises device discovery, keeps the devices
matching the requested platform, builds one :class:`DeviceDescriptor` per
device (with a build action bound to that device) and hands everything to
the controller that performs the sync.  Device discovery, building and
syncing are external services reached through the protocols below.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from micflow.exceptions import DeployError
from micflow.models import (
    BuildConfig,
    DeployOptions,
    DeviceInitOptions,
    DeviceInstance,
    OutputDirectoryQuery,
    SyncInfo,
)

logger = logging.getLogger(__name__)

BuildPlatformFn = Callable[[str, BuildConfig, Any], Any]


class DeviceService(Protocol):
    def initialize(self, options: DeviceInitOptions) -> None: ...

    def get_device_instances(self) -> list[DeviceInstance]: ...


class BuildPlatformService(Protocol):
    def build_platform(self, platform: str, build_config: BuildConfig, project_data: Any) -> Any: ...


class DeployController(Protocol):
    def deploy_on_devices(
        self,
        project_dir: str,
        device_descriptors: list[DeviceDescriptor],
        sync_info: SyncInfo,
    ) -> Any: ...


class ProjectData(Protocol):
    project_dir: str


@dataclass
class AdditionalDeployOptions:
    """Caller hooks that customise the per-device descriptors.

    Attributes:
        build_platform: Replaces the build service's ``build_platform``.
        get_output_directory: Returns the output path for a device.
        device_debug_map: Device identifier -> debugging enabled.
        skip_native_prepare: Passed through to every descriptor.
    """

    build_platform: Optional[BuildPlatformFn] = None
    get_output_directory: Optional[Callable[[OutputDirectoryQuery], Optional[str]]] = None
    device_debug_map: dict[str, bool] = field(default_factory=dict)
    skip_native_prepare: Optional[bool] = None


@dataclass
class DeviceDescriptor:
    """Everything the controller needs to deploy to one device."""

    identifier: str
    build_action: Callable[[], Any]
    debugging_enabled: Optional[bool] = None
    debug_options: Optional[DeployOptions] = None
    output_path: Optional[str] = None
    skip_native_prepare: Optional[bool] = None


class DeployCommandHelper:
    """Deploy the current project to every matching device.

    Args:
        build_service: Builds a platform for a device.
        device_service: Discovers devices and emulators.
        controller: Syncs the built app onto the devices.
        options: Options of the invoking command.
        project_data: The project being deployed (needs ``project_dir``).
    """

    def __init__(
        self,
        build_service: Optional[BuildPlatformService],
        device_service: DeviceService,
        controller: DeployController,
        options: DeployOptions,
        project_data: ProjectData,
    ) -> None:
        self._build_service = build_service
        self._device_service = device_service
        self._controller = controller
        self._options = options
        self._project_data = project_data

    def deploy(
        self,
        platform: Optional[str] = None,
        additional_options: Optional[AdditionalDeployOptions] = None,
    ) -> list[DeviceDescriptor]:
        """Build descriptors for the matching devices and start the deploy.

        Args:
            platform: Platform filter (case-insensitive).  ``None`` deploys
                to every discovered device.
            additional_options: Optional per-device hooks.

        Returns:
            The descriptors handed to the controller.

        Raises:
            DeployError: If no build function is available for a device.
        """
        options = self._options
        self._device_service.initialize(DeviceInitOptions(
            device_id=options.device,
            platform=platform,
            emulator=options.emulator,
            skip_infer_platform=not platform,
            sdk=options.sdk,
        ))

        devices = [
            device
            for device in self._device_service.get_device_instances()
            if not platform or device.device_info.platform.lower() == platform.lower()
        ]
        logger.debug("Deploying to %d device(s)", len(devices))

        descriptors = [self._describe(device, additional_options) for device in devices]
        self._controller.deploy_on_devices(
            self._project_data.project_dir, descriptors, self.sync_info()
        )
        return descriptors

    def sync_info(self) -> SyncInfo:
        """Project-level sync configuration derived from the command options."""
        options = self._options
        return SyncInfo(
            project_dir=self._project_data.project_dir,
            skip_watcher=not options.watch,
            clean=options.clean,
            release=options.release,
            env=options.env,
            timeout=options.timeout,
            use_hot_module_reload=options.hmr,
            force=options.force,
            emulator=options.emulator,
        )

    def build_config_for(self, device: DeviceInstance) -> BuildConfig:
        options = self._options
        return BuildConfig(
            build_for_device=not device.is_emulator,
            icloud_container_environment=options.icloud_container_environment,
            project_dir=options.path,
            clean=options.clean,
            team_id=options.team_id,
            device=options.device,
            provision=options.provision,
            release=options.release,
            key_store_alias=options.key_store_alias,
            key_store_path=options.key_store_path,
            key_store_alias_password=options.key_store_alias_password,
            key_store_password=options.key_store_password,
        )

    def _describe(
        self,
        device: DeviceInstance,
        additional: Optional[AdditionalDeployOptions],
    ) -> DeviceDescriptor:
        info = device.device_info
        build_config = self.build_config_for(device)

        build_fn: Optional[BuildPlatformFn] = None
        if additional and additional.build_platform:
            build_fn = additional.build_platform
        elif self._build_service is not None:
            build_fn = self._build_service.build_platform
        if build_fn is None:
            raise DeployError(f"No build service available for device {info.identifier}")

        output_path = None
        if additional and additional.get_output_directory:
            output_path = additional.get_output_directory(OutputDirectoryQuery(
                platform=info.platform,
                emulator=device.is_emulator,
                project_dir=self._project_data.project_dir,
            ))

        return DeviceDescriptor(
            identifier=info.identifier,
            build_action=functools.partial(build_fn, info.platform, build_config, self._project_data),
            debugging_enabled=additional.device_debug_map.get(info.identifier) if additional else None,
            debug_options=self._options,
            output_path=output_path,
            skip_native_prepare=additional.skip_native_prepare if additional else None,
        )
