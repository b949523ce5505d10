import io
import logging
import os
from typing import Dict, List
from unittest.mock import patch

# etcd3 ships protobuf 3 generated modules; must be set before any driver import
os.environ.setdefault("PROTOCOL_BUFFERS_PYTHON_IMPLEMENTATION", "python")

import pytest  # noqa: E402

from kviator import log  # noqa: E402
from kviator.errors import KeyNotFoundError, StoreOperationError  # noqa: E402
from kviator.store import KVPair, Store, normalize, split_key  # noqa: E402


class MemoryStore(Store):
    """Dict backed store, keys kept in normalized form."""

    def __init__(self, data: Dict[str, bytes] = None):
        self.data = {normalize(k): v for k, v in (data or {}).items()}
        self.closed = False
        self.fail_writes = False

    def put(self, key: str, value: bytes) -> None:
        if self.fail_writes:
            raise StoreOperationError("write refused")
        self.data[normalize(key)] = value

    def get(self, key: str) -> KVPair:
        path = normalize(key)
        if path not in self.data:
            raise KeyNotFoundError(key)
        return KVPair(key=path, value=self.data[path])

    def delete(self, key: str) -> None:
        path = normalize(key)
        if path not in self.data:
            raise KeyNotFoundError(key)
        del self.data[path]

    def delete_tree(self, directory: str) -> None:
        path = normalize(directory)
        if path == "/":
            self.data.clear()
            return
        for k in list(self.data):
            if k == path or k.startswith(path + "/"):
                del self.data[k]

    def list(self, directory: str) -> List[KVPair]:
        depth = len(split_key(directory))
        prefix = normalize(directory).rstrip("/") + "/"
        pairs = []
        for k, v in self.data.items():
            if k.startswith(prefix) and len(split_key(k)) == depth + 1:
                pairs.append(KVPair(key=k, value=v))
        if not pairs:
            raise KeyNotFoundError(directory)
        return pairs

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def memory_store():
    store = MemoryStore()
    with patch("kviator.cli.new_store", return_value=store) as factory:
        store.factory = factory
        yield store


@pytest.fixture
def piped_stdin():
    def _make(text: str) -> io.StringIO:
        return io.StringIO(text)
    return _make


@pytest.fixture
def base_args():
    return ["--kvstore", "etcd", "--client", "localhost:2379"]


@pytest.fixture(autouse=True)
def detach_log_handler():
    # run() binds its handler to the sys.stderr of the test that called it
    yield
    if log._handler is not None:
        logging.getLogger().removeHandler(log._handler)
        log._handler = None
