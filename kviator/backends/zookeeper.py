from contextlib import contextmanager
from typing import List

from kazoo.client import KazooClient
from kazoo.exceptions import KazooException, NoNodeError
from kazoo.handlers.threading import KazooTimeoutError

from kviator.config import Backend, StoreConfig
from kviator.errors import KeyNotFoundError, StoreConnectionError, StoreOperationError
from kviator.log import get_logger
from kviator.store import KVPair, Store, endpoint_addresses, join_key, normalize

logger = get_logger(__name__)

# created by the server itself, never deleted by a root deltree
RESERVED_NODE = "zookeeper"


@contextmanager
def _driver_errors(key: str = ""):
    try:
        yield
    except NoNodeError as exc:
        raise KeyNotFoundError(key) from exc
    except (KazooException, KazooTimeoutError) as exc:
        raise StoreOperationError(str(exc) or type(exc).__name__) from exc


class ZookeeperStore(Store):
    def __init__(self, client: KazooClient):
        self.client = client

    # ---------- WRITE ----------
    def put(self, key: str, value: bytes) -> None:
        path = normalize(key)
        with _driver_errors(key):
            if self.client.exists(path):
                self.client.set(path, value)
            else:
                self.client.create(path, value, makepath=True)

    # ---------- READ ----------
    def get(self, key: str) -> KVPair:
        path = normalize(key)
        with _driver_errors(key):
            value, _ = self.client.get(path)
        return KVPair(key=path, value=value or b"")

    # ---------- DELETE ----------
    def delete(self, key: str) -> None:
        with _driver_errors(key):
            self.client.delete(normalize(key))

    def delete_tree(self, directory: str) -> None:
        path = normalize(directory)
        with _driver_errors(directory):
            if path != "/":
                self.client.delete(path, recursive=True)
                return
            for child in self.client.get_children("/"):
                if child == RESERVED_NODE:
                    continue
                self.client.delete(join_key("/", child), recursive=True)

    # ---------- LIST ----------
    def list(self, directory: str) -> List[KVPair]:
        path = normalize(directory)
        with _driver_errors(directory):
            children = self.client.get_children(path)
        if not children:
            raise KeyNotFoundError(directory)

        pairs = []
        for child in children:
            child_path = join_key(path, child)
            try:
                with _driver_errors(child_path):
                    value, _ = self.client.get(child_path)
            except KeyNotFoundError:
                # removed between get_children and get
                logger.debug("child vanished while listing", key=child_path)
                continue
            pairs.append(KVPair(key=child_path, value=value or b""))
        return pairs

    def close(self) -> None:
        self.client.stop()
        self.client.close()


def new_store(config: StoreConfig) -> ZookeeperStore:
    addresses = endpoint_addresses(config, Backend.ZOOKEEPER)
    hosts = ",".join(f"{host}:{port}" for host, port in addresses)

    kwargs = {}
    if config.tls is not None:
        kwargs = {
            "use_ssl": True,
            "verify_certs": True,
            "ca": config.tls.ca_cert,
            "certfile": config.tls.client_cert,
            "keyfile": config.tls.client_key,
        }

    client = KazooClient(hosts=hosts, timeout=config.connection_timeout, **kwargs)
    try:
        client.start(timeout=config.connection_timeout)
    except (KazooTimeoutError, KazooException, OSError) as exc:
        raise StoreConnectionError(str(exc) or f"cannot connect to zookeeper at {hosts}") from exc
    logger.info("zookeeper session started", hosts=hosts)
    return ZookeeperStore(client)
