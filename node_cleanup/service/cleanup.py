import logging
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from node_cleanup.platform.kube import KubeClient, KubeError, Node, NotFoundError
from node_cleanup.service.aws import (
    AWSService,
    InstanceNotFoundInResponseError,
    ProviderQueryError,
)
from node_cleanup.service.node import ConditionNotFoundError, is_ready
from node_cleanup.util.util import run_every

logger = logging.getLogger()


class Decision(Enum):
    SKIP_READY = "skip-ready"
    SKIP_RUNNING = "skip-running"
    WOULD_DELETE = "would-delete"
    DELETED = "deleted"
    ERROR = "error"


@dataclass(frozen=True)
class CleanupConfig:
    frequency: timedelta = timedelta(seconds=120)
    dry_run: bool = False


@dataclass(frozen=True)
class NodeResult:
    node_name: str
    decision: Decision
    reason: str = ""


class CleanupService:
    _aws_service: AWSService
    _config: CleanupConfig
    _kube_client: KubeClient

    def __init__(
        self,
        config: CleanupConfig,
        kube_client: KubeClient,
        aws_service: AWSService,
    ) -> None:
        self._config = config
        self._kube_client = kube_client
        self._aws_service = aws_service

    def run(self, max_ticks: Optional[int] = None) -> None:
        logger.info(
            "Checking for nodes to clean up every %s (dry run: %s).",
            self._config.frequency,
            self._config.dry_run,
        )
        run_every(self._config.frequency, max_runs=max_ticks)(self.reconcile)()

    def reconcile(self) -> Optional[list[NodeResult]]:
        try:
            nodes = self._kube_client.list_nodes().items
        except KubeError:
            logger.exception("Failed to look up node list, skipping this tick.")
            return None
        results = [self.evaluate_node(node) for node in nodes]
        summary = Counter(result.decision.value for result in results)
        counts = ", ".join(
            f"{decision}={count}" for decision, count in sorted(summary.items())
        )
        logger.info("Processed %d nodes: %s", len(results), counts or "none")
        return results

    def evaluate_node(self, node: Node) -> NodeResult:
        node_name = node.metadata.name

        # Ready nodes are never cleaned up.
        try:
            ready = is_ready(node.status.conditions)
        except ConditionNotFoundError as error:
            return self._error(
                node_name, f"failed to check if node is ready: {error}"
            )
        if ready:
            logger.info("Node is ready, skipping: %s", node_name)
            return NodeResult(node_name, Decision.SKIP_READY, "node is ready")

        instance_id = node.instance_id
        if not instance_id:
            return self._error(node_name, "node has no EC2 instance ID")

        # Running instances are never cleaned up.
        try:
            running = self._aws_service.is_instance_running(instance_id)
        except (ProviderQueryError, InstanceNotFoundInResponseError) as error:
            return self._error(
                node_name, f"failed to check if instance is running: {error}"
            )
        if running:
            logger.info(
                "Node instance %s is running, skipping: %s", instance_id, node_name
            )
            return NodeResult(
                node_name, Decision.SKIP_RUNNING, f"instance {instance_id} is running"
            )

        return self.delete_node(node_name)

    def delete_node(self, node_name: str) -> NodeResult:
        if self._config.dry_run:
            logger.info("Node would have been deleted, skipping: %s", node_name)
            return NodeResult(node_name, Decision.WOULD_DELETE, "dry run")
        try:
            self._kube_client.delete_node(node_name)
        except NotFoundError:
            logger.info("Node already deleted: %s", node_name)
            return NodeResult(node_name, Decision.DELETED, "node already deleted")
        except KubeError as error:
            return self._error(node_name, f"failed to delete node: {error}")
        logger.info("Node deleted: %s", node_name)
        return NodeResult(node_name, Decision.DELETED, "instance is not running")

    @staticmethod
    def _error(node_name: str, reason: str) -> NodeResult:
        logger.error("Node %s skipped, %s", node_name, reason)
        return NodeResult(node_name, Decision.ERROR, reason)
