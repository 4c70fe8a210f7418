from typing import Any, Optional

import pytest

from node_cleanup.platform.kube import Node


def build_node(
    name: str,
    ready: Optional[str] = "False",
    external_id: str = "",
    provider_id: str = "",
) -> Node:
    conditions: list[dict[str, Any]] = [{"type": "MemoryPressure", "status": "False"}]
    if ready is not None:
        conditions.append({"type": "Ready", "status": ready})
    return Node(
        **{
            "metadata": {"name": name},
            "spec": {"externalID": external_id, "providerID": provider_id},
            "status": {"conditions": conditions},
        }
    )


@pytest.fixture
def make_node():
    return build_node
