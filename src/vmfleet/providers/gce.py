import argparse
import os
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta
from functools import lru_cache
from typing import Any

from google.cloud import compute_v1
from tenacity import retry

from ..core import (
    GCE_DEFAULT_IMAGE,
    GCE_DEFAULT_MACHINE_TYPE,
    GCE_DEFAULT_ZONES,
    GCE_LABEL,
    RETRY_CONFIG,
    VM_NAME_RE,
    format_duration,
    parse_duration,
)
from ..errors import VMErrorKind, VMFleetError
from ..logger import logger
from ..models import VM, CreateOpts, VMList
from ..provider import Provider, ProviderFlags

PROVIDER_NAME = "gce"


@lru_cache(maxsize=1)
def get_compute_instances_client() -> Any:
    return compute_v1.InstancesClient()


class GCEProviderFlags(ProviderFlags):
    """Options for `create`, all exposed as --gce-* flags."""

    def __init__(self) -> None:
        self.project = os.environ.get("CLOUDSDK_CORE_PROJECT", "")
        self.machine_type = GCE_DEFAULT_MACHINE_TYPE
        self.image = GCE_DEFAULT_IMAGE
        self.zones = list(GCE_DEFAULT_ZONES)

    def configure_create_flags(self, parser: argparse.ArgumentParser) -> None:
        group = parser.add_argument_group("GCE options")
        group.add_argument(
            "--gce-project",
            default=self.project,
            help="Project to create VMs in (default: $CLOUDSDK_CORE_PROJECT)",
        )
        group.add_argument(
            "--gce-machine-type",
            default=self.machine_type,
            help=f"Machine type (default: {self.machine_type})",
        )
        group.add_argument(
            "--gce-image", default=self.image, help="Boot disk source image"
        )
        group.add_argument(
            "--gce-zones",
            nargs="+",
            default=self.zones,
            help=f"Zones for VMs (default: {', '.join(self.zones)})",
        )

    def load_create_flags(self, args: argparse.Namespace) -> None:
        self.project = getattr(args, "gce_project", self.project)
        self.machine_type = getattr(args, "gce_machine_type", self.machine_type)
        self.image = getattr(args, "gce_image", self.image)
        self.zones = getattr(args, "gce_zones", self.zones)


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def _list_instances(project_id: str) -> list[tuple[str, Any]]:
    """Fetches every instance we manage in the project, with its zone."""
    client = get_compute_instances_client()
    request = compute_v1.AggregatedListInstancesRequest(
        project=project_id, filter=f"labels.{GCE_LABEL}=true"
    )

    results = []
    for zone_key, scoped in client.aggregated_list(request=request):
        if not scoped.instances:
            continue
        # e.g. zones/us-east1-b
        zone = zone_key.split("/")[-1]
        for instance in scoped.instances:
            results.append((zone, instance))
    return results


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def _insert_instance(project_id: str, zone: str, instance: compute_v1.Instance) -> None:
    client = get_compute_instances_client()
    client.insert(project=project_id, zone=zone, instance_resource=instance).result()


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def _delete_instance(project_id: str, zone: str, name: str) -> None:
    client = get_compute_instances_client()
    client.delete(project=project_id, zone=zone, instance=name).result()


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def _set_lifetime_label(
    project_id: str, zone: str, name: str, lifetime: timedelta
) -> None:
    client = get_compute_instances_client()
    # The fingerprint guards against clobbering concurrent label changes
    current = client.get(project=project_id, zone=zone, instance=name)
    labels = dict(current.labels) if current.labels else {}
    labels["lifetime"] = format_duration(lifetime)
    client.set_labels(
        project=project_id,
        zone=zone,
        instance=name,
        instances_set_labels_request_resource=compute_v1.InstancesSetLabelsRequest(
            labels=labels, label_fingerprint=current.label_fingerprint
        ),
    ).result()


def _to_vm(project_id: str, zone: str, instance: Any) -> VM:
    errors = []
    if not VM_NAME_RE.match(instance.name):
        errors.append(VMErrorKind.INVALID_NAME)

    lifetime = timedelta(0)
    labels = dict(instance.labels) if instance.labels else {}
    try:
        lifetime = parse_duration(labels["lifetime"])
    except (KeyError, ValueError):
        errors.append(VMErrorKind.NO_EXPIRATION)

    private_ip = ""
    public_ip = ""
    if instance.network_interfaces:
        nic = instance.network_interfaces[0]
        private_ip = nic.network_i_p or ""
        if nic.access_configs:
            public_ip = nic.access_configs[0].nat_i_p or ""
    if not private_ip or not public_ip:
        errors.append(VMErrorKind.BAD_NETWORK)

    return VM(
        name=instance.name,
        provider=PROVIDER_NAME,
        created_at=instance.creation_timestamp,
        lifetime=lifetime,
        dns=f"{instance.name}.{zone}.{project_id}",
        private_ip=private_ip,
        public_ip=public_ip,
        zone=zone,
        errors=errors,
    )


class GCEProvider(Provider):
    """Google Compute Engine, driven through the compute API and gcloud."""

    def __init__(self, flags: GCEProviderFlags | None = None) -> None:
        self._flags = flags or GCEProviderFlags()

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    @property
    def project(self) -> str:
        """
        Project from --gce-project or $CLOUDSDK_CORE_PROJECT, falling back to
        the gcloud default project. Resolved once per process.
        """
        if not self._flags.project:
            self._flags.project = self._gcloud("config", "get-value", "project")
        if not self._flags.project:
            raise VMFleetError(
                "no GCE project configured (run `gcloud config set project`, "
                "set CLOUDSDK_CORE_PROJECT or pass --gce-project to create)",
                provider=PROVIDER_NAME,
            )
        return self._flags.project

    def _gcloud(self, *args: str) -> str:
        cmd = ["gcloud", *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        res = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return res.stdout.strip()

    def clean_ssh(self) -> None:
        self._gcloud(
            "compute", "config-ssh", "--project", self.project, "--quiet", "--remove"
        )

    def config_ssh(self) -> None:
        self._gcloud("compute", "config-ssh", "--project", self.project, "--quiet")

    def _build_instance(self, name: str, zone: str, opts: CreateOpts) -> Any:
        disks = [
            compute_v1.AttachedDisk(
                boot=True,
                auto_delete=True,
                initialize_params=compute_v1.AttachedDiskInitializeParams(
                    source_image=self._flags.image
                ),
            )
        ]
        if opts.use_local_ssd:
            disks.append(
                compute_v1.AttachedDisk(
                    type_="SCRATCH",
                    auto_delete=True,
                    interface="NVME",
                    initialize_params=compute_v1.AttachedDiskInitializeParams(
                        disk_type=f"zones/{zone}/diskTypes/local-ssd"
                    ),
                )
            )

        return compute_v1.Instance(
            name=name,
            machine_type=f"zones/{zone}/machineTypes/{self._flags.machine_type}",
            labels={GCE_LABEL: "true", "lifetime": format_duration(opts.lifetime)},
            disks=disks,
            network_interfaces=[
                compute_v1.NetworkInterface(
                    name="global/networks/default",
                    access_configs=[
                        compute_v1.AccessConfig(
                            name="External NAT", type_="ONE_TO_ONE_NAT"
                        )
                    ],
                )
            ],
        )

    def _zones_for(self, count: int, opts: CreateOpts) -> list[str]:
        zones = self._flags.zones or list(GCE_DEFAULT_ZONES)
        if not opts.geo_distributed:
            return [zones[0]] * count
        # Round-robin so VMs spread evenly across the configured zones
        return [zones[i % len(zones)] for i in range(count)]

    def create(self, names: list[str], opts: CreateOpts) -> None:
        if not names:
            return
        project = self.project
        zones = self._zones_for(len(names), opts)

        failed: dict[str, Exception] = {}
        with ThreadPoolExecutor(max_workers=min(len(names), 10)) as executor:
            futures = {
                executor.submit(
                    _insert_instance,
                    project,
                    zone,
                    self._build_instance(name, zone, opts),
                ): name
                for name, zone in zip(names, zones)
            }
            for future in as_completed(futures):
                try:
                    future.result()
                except Exception as e:
                    logger.debug(f"Failed to create {futures[future]}: {e}")
                    failed[futures[future]] = e

        if failed:
            raise VMFleetError(
                f"failed to create {len(failed)} of {len(names)} VMs: "
                f"{', '.join(sorted(failed))}",
                provider=PROVIDER_NAME,
                operation="create",
                cause=next(iter(failed.values())),
            )

    def delete(self, vms: VMList) -> None:
        project = self.project
        for vm in vms:
            _delete_instance(project, vm.zone, vm.name)

    def extend(self, vms: VMList, lifetime: timedelta) -> None:
        project = self.project
        for vm in vms:
            _set_lifetime_label(project, vm.zone, vm.name, lifetime)

    def find_active_account(self) -> str:
        account = self._gcloud(
            "auth", "list", "--filter=status:ACTIVE", "--format=value(account)"
        )
        # Only the user part of user@domain is used to name VMs
        return account.split("@")[0]

    def flags(self) -> ProviderFlags:
        return self._flags

    def list(self) -> VMList:
        project = self.project
        return VMList(
            _to_vm(project, zone, instance) for zone, instance in _list_instances(project)
        )
