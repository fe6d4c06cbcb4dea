import argparse
import subprocess
from datetime import timedelta

import pytest

from vmfleet.errors import VMErrorKind, VMFleetError
from vmfleet.models import VM, CreateOpts, VMList
from vmfleet.providers.gce import GCEProvider, GCEProviderFlags


@pytest.fixture
def flags():
    f = GCEProviderFlags()
    f.project = "test-project"
    f.zones = ["us-east1-b", "us-west1-b"]
    return f


@pytest.fixture
def client(mocker):
    mock_get = mocker.patch("vmfleet.providers.gce.get_compute_instances_client")
    return mock_get.return_value


def _mock_instance(mocker, name, labels, internal_ip=None, external_ip=None):
    inst = mocker.Mock()
    inst.name = name
    inst.creation_timestamp = "2023-01-01T12:00:00.000-07:00"
    inst.labels = labels
    if internal_ip:
        nic = mocker.Mock()
        nic.network_i_p = internal_ip
        nic.access_configs = [mocker.Mock(nat_i_p=external_ip)] if external_ip else []
        inst.network_interfaces = [nic]
    else:
        inst.network_interfaces = []
    return inst


def test_list_converts_instances(mocker, flags, client):
    good = _mock_instance(
        mocker,
        "alice-test-0001",
        {"vmfleet": "true", "lifetime": "12h0m0s"},
        internal_ip="10.0.0.1",
        external_ip="34.1.2.3",
    )
    broken = _mock_instance(mocker, "Broken_VM", {"vmfleet": "true"})

    scoped = mocker.Mock()
    scoped.instances = [good, broken]
    empty = mocker.Mock()
    empty.instances = []
    client.aggregated_list.return_value = [
        ("zones/us-east1-b", scoped),
        ("zones/us-west1-a", empty),
    ]

    vms = GCEProvider(flags).list()

    assert vms.names() == ["alice-test-0001", "Broken_VM"]
    vm = vms[0]
    assert vm.provider == "gce"
    assert vm.zone == "us-east1-b"
    assert vm.locality() == "region=us-east1,zone=us-east1-b"
    assert vm.dns == "alice-test-0001.us-east1-b.test-project"
    assert vm.private_ip == "10.0.0.1"
    assert vm.public_ip == "34.1.2.3"
    assert vm.lifetime == timedelta(hours=12)
    assert vm.created_at.year == 2023
    assert vm.is_valid

    assert set(vms[1].errors) == {
        VMErrorKind.INVALID_NAME,
        VMErrorKind.NO_EXPIRATION,
        VMErrorKind.BAD_NETWORK,
    }

    request = client.aggregated_list.call_args.kwargs["request"]
    assert request.project == "test-project"
    assert request.filter == "labels.vmfleet=true"


def test_create_spreads_zones_when_geo_distributed(flags, client):
    opts = CreateOpts(lifetime=timedelta(hours=6), geo_distributed=True)
    GCEProvider(flags).create(["n-0001", "n-0002", "n-0003"], opts)

    assert client.insert.call_count == 3
    placed = {
        c.kwargs["instance_resource"].name: c.kwargs["zone"]
        for c in client.insert.call_args_list
    }
    assert placed == {
        "n-0001": "us-east1-b",
        "n-0002": "us-west1-b",
        "n-0003": "us-east1-b",
    }

    instance = client.insert.call_args_list[0].kwargs["instance_resource"]
    assert instance.labels["lifetime"] == "6h0m0s"
    assert instance.labels["vmfleet"] == "true"
    assert len(instance.disks) == 1


def test_create_single_zone_with_local_ssd(flags, client):
    opts = CreateOpts(use_local_ssd=True)
    GCEProvider(flags).create(["n-0001", "n-0002"], opts)

    zones = {c.kwargs["zone"] for c in client.insert.call_args_list}
    assert zones == {"us-east1-b"}
    instance = client.insert.call_args_list[0].kwargs["instance_resource"]
    assert len(instance.disks) == 2
    assert instance.disks[1].type_ == "SCRATCH"
    assert instance.machine_type.endswith("/machineTypes/n1-standard-4")


def test_create_requires_project(mocker, client):
    mock_run = mocker.patch("vmfleet.providers.gce.subprocess.run")
    mock_run.return_value.stdout = ""
    f = GCEProviderFlags()
    f.project = ""
    with pytest.raises(VMFleetError, match="no GCE project configured"):
        GCEProvider(f).create(["n-0001"], CreateOpts())
    client.insert.assert_not_called()


def test_delete(flags, client):
    vms = VMList(
        [
            VM(name="n-0001", provider="gce", zone="us-east1-b"),
            VM(name="n-0002", provider="gce", zone="us-west1-b"),
        ]
    )
    GCEProvider(flags).delete(vms)

    calls = [c.kwargs for c in client.delete.call_args_list]
    assert calls == [
        {"project": "test-project", "zone": "us-east1-b", "instance": "n-0001"},
        {"project": "test-project", "zone": "us-west1-b", "instance": "n-0002"},
    ]


def test_extend_updates_lifetime_label(flags, client):
    current = client.get.return_value
    current.labels = {"vmfleet": "true", "lifetime": "12h0m0s", "team": "db"}
    current.label_fingerprint = "abc123"

    vms = VMList([VM(name="n-0001", provider="gce", zone="us-east1-b")])
    GCEProvider(flags).extend(vms, timedelta(hours=24))

    kwargs = client.set_labels.call_args.kwargs
    assert kwargs["instance"] == "n-0001"
    body = kwargs["instances_set_labels_request_resource"]
    assert body.label_fingerprint == "abc123"
    assert dict(body.labels) == {
        "vmfleet": "true",
        "lifetime": "24h0m0s",
        "team": "db",
    }


def test_find_active_account(mocker, flags):
    mock_run = mocker.patch("vmfleet.providers.gce.subprocess.run")
    mock_run.return_value.stdout = "alice@example.com\n"

    assert GCEProvider(flags).find_active_account() == "alice"

    cmd = mock_run.call_args[0][0]
    assert cmd[:3] == ["gcloud", "auth", "list"]


def test_find_active_account_none_logged_in(mocker, flags):
    mock_run = mocker.patch("vmfleet.providers.gce.subprocess.run")
    mock_run.return_value.stdout = ""
    assert GCEProvider(flags).find_active_account() == ""


def test_find_active_account_gcloud_failure(mocker, flags):
    mocker.patch(
        "vmfleet.providers.gce.subprocess.run",
        side_effect=subprocess.CalledProcessError(1, ["gcloud"]),
    )
    with pytest.raises(subprocess.CalledProcessError):
        GCEProvider(flags).find_active_account()


def test_ssh_config_commands(mocker, flags):
    mock_run = mocker.patch("vmfleet.providers.gce.subprocess.run")
    mock_run.return_value.stdout = ""
    p = GCEProvider(flags)

    p.config_ssh()
    cmd = mock_run.call_args[0][0]
    assert cmd[:3] == ["gcloud", "compute", "config-ssh"]
    assert "test-project" in cmd
    assert "--remove" not in cmd

    p.clean_ssh()
    assert "--remove" in mock_run.call_args[0][0]


def test_flags_round_trip_through_argparse(flags):
    parser = argparse.ArgumentParser()
    flags.configure_create_flags(parser)
    args = parser.parse_args(
        ["--gce-machine-type", "n2-standard-8", "--gce-zones", "europe-west2-b"]
    )
    flags.load_create_flags(args)

    assert flags.machine_type == "n2-standard-8"
    assert flags.zones == ["europe-west2-b"]
    assert flags.project == "test-project"
    assert GCEProvider(flags).flags() is flags


def test_project_falls_back_to_gcloud_config(mocker, client, monkeypatch):
    monkeypatch.delenv("CLOUDSDK_CORE_PROJECT", raising=False)
    mock_run = mocker.patch("vmfleet.providers.gce.subprocess.run")
    mock_run.return_value.stdout = "gcloud-project\n"
    client.aggregated_list.return_value = []

    p = GCEProvider()
    assert p.list() == []
    assert p.project == "gcloud-project"

    request = client.aggregated_list.call_args.kwargs["request"]
    assert request.project == "gcloud-project"
    # Resolved once, then remembered
    assert mock_run.call_count == 1
    assert mock_run.call_args[0][0] == ["gcloud", "config", "get-value", "project"]
