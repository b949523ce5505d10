import os
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from kviator.errors import BackendNotSupportedError

CONNECTION_TIMEOUT = 10.0

ENV_PREFIX = "KVIATOR_"


class Backend(str, Enum):
    CONSUL = "consul"
    ETCD = "etcd"
    ZOOKEEPER = "zookeper"

    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]


_DEFAULT_PORTS = {
    Backend.CONSUL: 8500,
    Backend.ETCD: 2379,
    Backend.ZOOKEEPER: 2181,
}


class TLSConfig(BaseModel):
    ca_cert: str
    client_cert: str
    client_key: str


class StoreConfig(BaseModel):
    kvstore: str = ""
    endpoints: List[str] = Field(default_factory=list)
    tls: Optional[TLSConfig] = None
    connection_timeout: float = CONNECTION_TIMEOUT

    def backend(self) -> Backend:
        try:
            return Backend(self.kvstore)
        except ValueError:
            raise BackendNotSupportedError(self.kvstore) from None


def env_default(flag: str) -> str:
    """Default for a connection flag, read from KVIATOR_<FLAG>."""
    name = ENV_PREFIX + flag.replace("-", "_").upper()
    return os.environ.get(name, "")


def parse_endpoints(client: str) -> List[str]:
    return [part.strip() for part in client.split(",") if part.strip()]


def split_endpoint(endpoint: str, default_port: int) -> Tuple[str, int]:
    host, sep, port = endpoint.rpartition(":")
    if not sep or not port.isdigit():
        return endpoint, default_port
    return host, int(port)


def tls_from_paths(ca_cert: str, client_cert: str, client_key: str) -> Optional[TLSConfig]:
    # all three are needed for mutual TLS, anything less means plain transport
    if ca_cert and client_cert and client_key:
        return TLSConfig(ca_cert=ca_cert, client_cert=client_cert, client_key=client_key)
    return None
