from collections.abc import Sequence

from node_cleanup.platform.kube import ConditionStatus, NodeCondition

NODE_READY_CONDITION = "Ready"


class ConditionNotFoundError(Exception):
    pass


def is_ready(conditions: Sequence[NodeCondition]) -> bool:
    for condition in conditions:
        if condition.type != NODE_READY_CONDITION:
            continue
        return condition.status != ConditionStatus.FALSE
    raise ConditionNotFoundError(
        f"Cannot find condition type: {NODE_READY_CONDITION}"
    )
