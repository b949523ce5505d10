import os
from contextlib import contextmanager
from typing import Dict, List

# the generated protobuf modules shipped with etcd3 predate protobuf 4 and
# only load with the pure python implementation
os.environ.setdefault("PROTOCOL_BUFFERS_PYTHON_IMPLEMENTATION", "python")

import etcd3  # noqa: E402
import grpc  # noqa: E402
from etcd3.exceptions import Etcd3Exception  # noqa: E402

from kviator.config import Backend, StoreConfig  # noqa: E402
from kviator.errors import KeyNotFoundError, StoreConnectionError, StoreOperationError  # noqa: E402
from kviator.log import get_logger  # noqa: E402
from kviator.store import KVPair, Store, endpoint_addresses, normalize  # noqa: E402

logger = get_logger(__name__)


@contextmanager
def _driver_errors():
    try:
        yield
    except (Etcd3Exception, grpc.RpcError) as exc:
        raise StoreOperationError(str(exc) or type(exc).__name__) from exc


class EtcdStore(Store):
    def __init__(self, client: etcd3.Etcd3Client):
        self.client = client

    # ---------- WRITE ----------
    def put(self, key: str, value: bytes) -> None:
        with _driver_errors():
            self.client.put(normalize(key), value)

    # ---------- READ ----------
    def get(self, key: str) -> KVPair:
        with _driver_errors():
            value, meta = self.client.get(normalize(key))
        if value is None:
            raise KeyNotFoundError(key)
        return KVPair(key=meta.key.decode(), value=value)

    # ---------- DELETE ----------
    def delete(self, key: str) -> None:
        with _driver_errors():
            deleted = self.client.delete(normalize(key))
        if not deleted:
            raise KeyNotFoundError(key)

    def delete_tree(self, directory: str) -> None:
        key = normalize(directory)
        with _driver_errors():
            if key == "/":
                self.client.delete_prefix("/")
                return
            self.client.delete(key)
            self.client.delete_prefix(key + "/")

    # ---------- LIST ----------
    def list(self, directory: str) -> List[KVPair]:
        prefix = normalize(directory).rstrip("/") + "/"

        # etcd has a flat keyspace, deeper keys fold onto their first segment
        children: Dict[str, bytes] = {}
        with _driver_errors():
            for value, meta in self.client.get_prefix(prefix):
                rest = meta.key.decode()[len(prefix):]
                child = rest.split("/", 1)[0]
                if not child:
                    continue
                full_key = prefix + child
                if rest == child:
                    children[full_key] = value
                else:
                    children.setdefault(full_key, b"")

        if not children:
            raise KeyNotFoundError(directory)
        return [KVPair(key=k, value=v) for k, v in children.items()]

    def close(self) -> None:
        self.client.close()


def new_store(config: StoreConfig) -> EtcdStore:
    addresses = endpoint_addresses(config, Backend.ETCD)
    if len(addresses) > 1:
        logger.warning("etcd uses only the first client address", ignored=config.endpoints[1:])
    host, port = addresses[0]

    kwargs = {}
    if config.tls is not None:
        kwargs = {
            "ca_cert": config.tls.ca_cert,
            "cert_cert": config.tls.client_cert,
            "cert_key": config.tls.client_key,
        }

    try:
        client = etcd3.client(host=host, port=port, timeout=config.connection_timeout, **kwargs)
    except OSError as exc:
        raise StoreConnectionError(f"cannot load TLS material: {exc}") from exc
    logger.info("etcd client ready", host=host, port=port)
    return EtcdStore(client)
