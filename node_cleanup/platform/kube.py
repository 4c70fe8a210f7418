import logging
from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any, Optional

from kubernetes.client import ApiClient, Configuration, CoreV1Api  # type: ignore
from kubernetes.client.exceptions import ApiException  # type: ignore
from kubernetes.config import (  # type: ignore
    load_incluster_config,
    new_client_from_config,
)
from pydantic import BaseModel, Field, ValidationError
from urllib3.exceptions import HTTPError

logger = logging.getLogger()

AWS_PROVIDER_ID_PREFIX = "aws://"


class KubeError(Exception):
    pass


class NotFoundError(KubeError):
    pass


def handle_error(func: Callable) -> Callable:  # type: ignore
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ApiException as error:
            logger.debug(
                "Kube Client Call Error: %s\nArgs: %s\nKwargs: %s",
                error.reason,
                args,
                kwargs,
            )
            if error.status == 404:
                raise NotFoundError("Kubernetes resource not found.") from error
            raise KubeError(
                f"Kubernetes API error: {error.status} {error.reason}"
            ) from error
        except HTTPError as error:
            logger.debug("Kube Client Connection Error: %s", error)
            raise KubeError("Kubernetes API unreachable.") from error
        except ValidationError as error:
            logger.debug("Kube Client Response Error: %s", error)
            raise KubeError("Unexpected Kubernetes API response.") from error

    return wrapper


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class NodeCondition(BaseModel):
    status: str = ConditionStatus.UNKNOWN.value
    type: str = ""


class NodeMetadata(BaseModel):
    name: str


class NodeSpec(BaseModel):
    external_id: str = Field(alias="externalID", default="")
    provider_id: str = Field(alias="providerID", default="")


class NodeStatus(BaseModel):
    conditions: list[NodeCondition] = []


class Node(BaseModel):
    metadata: NodeMetadata
    spec: NodeSpec = Field(default_factory=NodeSpec)
    status: NodeStatus = Field(default_factory=NodeStatus)

    @property
    def instance_id(self) -> str:
        if self.spec.external_id:
            return self.spec.external_id
        # aws:///<availability-zone>/<instance-id>
        if self.spec.provider_id.startswith(AWS_PROVIDER_ID_PREFIX):
            instance_id = self.spec.provider_id.rsplit("/", 1)[-1]
            if instance_id.startswith("i-"):
                return instance_id
        return ""


class NodeList(BaseModel):
    items: list[Node] = []


class KubeClient:
    _api_client: ApiClient
    _core_v1_api: CoreV1Api

    def __init__(self, config_file: Optional[str] = None) -> None:
        if config_file:
            logger.debug("Loading kubeconfig: %s", config_file)
            api_client = new_client_from_config(config_file=config_file)
        else:
            logger.debug("Loading in-cluster config.")
            configuration = Configuration()
            load_incluster_config(client_configuration=configuration)
            api_client = ApiClient(configuration=configuration)
        self._api_client = api_client
        self._core_v1_api = CoreV1Api(api_client=api_client)

    @handle_error
    def delete_node(self, name: str) -> None:
        self._core_v1_api.delete_node(name=name)

    @handle_error
    def list_nodes(self) -> NodeList:
        response = self._core_v1_api.list_node()
        node_list = NodeList(**self._api_client.sanitize_for_serialization(response))
        logger.debug("Listed %d nodes.", len(node_list.items))
        return node_list
