from contextlib import contextmanager
from typing import List

import consul
import requests

from kviator.config import Backend, StoreConfig
from kviator.errors import KeyNotFoundError, StoreOperationError
from kviator.log import get_logger
from kviator.store import KVPair, Store, endpoint_addresses, normalize

logger = get_logger(__name__)


def _key(key: str) -> str:
    # consul keys carry no leading slash
    return normalize(key).lstrip("/")


@contextmanager
def _driver_errors():
    try:
        yield
    except (consul.ConsulException, requests.RequestException) as exc:
        raise StoreOperationError(str(exc)) from exc


class ConsulStore(Store):
    def __init__(self, client: consul.Consul):
        self.client = client

    # ---------- WRITE ----------
    def put(self, key: str, value: bytes) -> None:
        with _driver_errors():
            ok = self.client.kv.put(_key(key), value)
        if not ok:
            raise StoreOperationError(f"consul refused to write {_key(key)!r}")

    # ---------- READ ----------
    def get(self, key: str) -> KVPair:
        with _driver_errors():
            _, data = self.client.kv.get(_key(key))
        if data is None:
            raise KeyNotFoundError(key)
        return KVPair(key=data["Key"], value=data["Value"] or b"")

    # ---------- DELETE ----------
    def delete(self, key: str) -> None:
        self.get(key)
        with _driver_errors():
            self.client.kv.delete(_key(key))

    def delete_tree(self, directory: str) -> None:
        with _driver_errors():
            self.client.kv.delete(_key(directory), recurse=True)

    # ---------- LIST ----------
    def list(self, directory: str) -> List[KVPair]:
        prefix = _key(directory)
        if prefix:
            prefix += "/"

        with _driver_errors():
            _, keys = self.client.kv.get(prefix, keys=True, separator="/")
        keys = [k for k in keys or [] if k != prefix]
        if not keys:
            raise KeyNotFoundError(directory)

        pairs = []
        for k in keys:
            if k.endswith("/"):
                # folder placeholder, consul stores no value for it
                pairs.append(KVPair(key=k.rstrip("/")))
                continue
            with _driver_errors():
                _, data = self.client.kv.get(k)
            value = data["Value"] if data else None
            pairs.append(KVPair(key=k, value=value or b""))
        return pairs


def new_store(config: StoreConfig) -> ConsulStore:
    addresses = endpoint_addresses(config, Backend.CONSUL)
    if len(addresses) > 1:
        logger.warning("consul uses only the first client address", ignored=config.endpoints[1:])
    host, port = addresses[0]

    kwargs = {}
    if config.tls is not None:
        kwargs = {
            "scheme": "https",
            "verify": config.tls.ca_cert,
            "cert": (config.tls.client_cert, config.tls.client_key),
        }

    client = consul.Consul(host=host, port=port, **kwargs)
    logger.info("consul client ready", host=host, port=port)
    return ConsulStore(client)
