class KVStoreError(Exception):
    """Base class for every failure raised by kviator."""


class BackendNotSupportedError(KVStoreError):
    def __init__(self, kvstore: str):
        self.kvstore = kvstore
        super().__init__(f"Backend storage not supported yet, please choose one of consul, etcd, zookeper (got {kvstore!r})")


class StoreConnectionError(KVStoreError):
    pass


class KeyNotFoundError(KVStoreError):
    def __init__(self, key: str = ""):
        self.key = key
        super().__init__("Key not found in store")


class StoreOperationError(KVStoreError):
    pass
