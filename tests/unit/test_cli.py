from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from node_cleanup.cli import cleanup as cli
from node_cleanup.platform.kube import KubeError, NodeList


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("FREQUENCY", "DRY_RUN", "KUBECONFIG"):
        monkeypatch.delenv(name, raising=False)


def test_parse_args_defaults():
    args = cli.parse_args([])

    assert args.frequency == timedelta(seconds=120)
    assert args.dry is False
    assert args.kubeconfig is None
    assert args.once is False


def test_parse_args_defaults_from_environment(monkeypatch):
    monkeypatch.setenv("FREQUENCY", "5m")
    monkeypatch.setenv("DRY_RUN", "true")
    monkeypatch.setenv("KUBECONFIG", "/etc/kubernetes/admin.conf")

    args = cli.parse_args([])

    assert args.frequency == timedelta(minutes=5)
    assert args.dry is True
    assert args.kubeconfig == "/etc/kubernetes/admin.conf"


def test_parse_args_flags_override_environment(monkeypatch):
    monkeypatch.setenv("FREQUENCY", "5m")

    args = cli.parse_args(["--frequency", "30s", "--dry", "--once"])

    assert args.frequency == timedelta(seconds=30)
    assert args.dry is True
    assert args.once is True


@pytest.mark.parametrize("frequency", ["soon", "0s"])
def test_parse_args_invalid_frequency(frequency):
    with pytest.raises(SystemExit) as exc:
        cli.parse_args(["--frequency", frequency])
    assert exc.value.code == 2


@pytest.fixture
def fake_clients(monkeypatch):
    kube_client = MagicMock()
    aws_service = MagicMock()
    kube_client_class = MagicMock(return_value=kube_client)
    monkeypatch.setattr(cli, "KubeClient", kube_client_class)
    monkeypatch.setattr(cli, "AWSService", MagicMock(return_value=aws_service))
    monkeypatch.setattr(cli, "setup_logging", lambda: None)
    return kube_client_class, kube_client, aws_service


def test_main_once(fake_clients, make_node):
    kube_client_class, kube_client, aws_service = fake_clients
    kube_client.list_nodes.return_value = NodeList(
        items=[make_node("n1", external_id="i-1")]
    )
    aws_service.is_instance_running.return_value = False

    assert cli.main(["--once", "--dry", "--kubeconfig", "kubeconfig.yaml"]) == 0

    kube_client_class.assert_called_once_with(config_file="kubeconfig.yaml")
    kube_client.delete_node.assert_not_called()


def test_main_once_list_failure(fake_clients):
    _, kube_client, _ = fake_clients
    kube_client.list_nodes.side_effect = KubeError("Kubernetes API unreachable.")

    assert cli.main(["--once"]) == 1


def test_main_runs_loop(monkeypatch, fake_clients):
    runs = []
    monkeypatch.setattr(
        cli.CleanupService, "run", lambda self: runs.append(self._config)
    )

    assert cli.main(["--frequency", "1m"]) == 0

    assert runs[0].frequency == timedelta(minutes=1)
    assert runs[0].dry_run is False
