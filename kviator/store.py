import importlib
from abc import ABC, abstractmethod
from typing import List, Tuple

from pydantic import BaseModel

from kviator.config import Backend, StoreConfig, split_endpoint
from kviator.errors import KeyNotFoundError, StoreConnectionError
from kviator.log import get_logger

logger = get_logger(__name__)

# backend -> module under kviator.backends exposing new_store(config)
_DRIVERS = {
    Backend.CONSUL: "consul",
    Backend.ETCD: "etcd",
    Backend.ZOOKEEPER: "zookeeper",
}


class KVPair(BaseModel):
    key: str
    value: bytes = b""


def split_key(key: str) -> List[str]:
    return [part for part in key.split("/") if part]


def normalize(key: str) -> str:
    return "/" + "/".join(split_key(key))


def join_key(directory: str, child: str) -> str:
    return normalize(directory).rstrip("/") + "/" + child


class Store(ABC):
    """One open connection to a key-value backend."""

    # ---------- WRITE ----------
    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        ...

    # ---------- READ ----------
    @abstractmethod
    def get(self, key: str) -> KVPair:
        """Return the pair stored at key, or raise KeyNotFoundError."""

    def exists(self, key: str) -> bool:
        try:
            self.get(key)
        except KeyNotFoundError:
            return False
        return True

    # ---------- DELETE ----------
    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def delete_tree(self, directory: str) -> None:
        """Delete directory and everything below it. "" is the root."""

    # ---------- LIST ----------
    @abstractmethod
    def list(self, directory: str) -> List[KVPair]:
        """Immediate children of directory, in backend order."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def new_store(config: StoreConfig) -> Store:
    backend = config.backend()
    # only the selected driver library gets imported
    module = importlib.import_module(f"kviator.backends.{_DRIVERS[backend]}")
    logger.debug("opening store", backend=backend.value, endpoints=config.endpoints, tls=config.tls is not None)
    return module.new_store(config)


def endpoint_addresses(config: StoreConfig, backend: Backend) -> List[Tuple[str, int]]:
    if not config.endpoints:
        raise StoreConnectionError("no client address given, use --client <host:port>")
    return [split_endpoint(endpoint, backend.default_port) for endpoint in config.endpoints]
