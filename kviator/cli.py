import argparse
import os
import sys
from typing import IO, Callable, Dict, List, Optional

from kviator import APP_NAME, __version__
from kviator.config import StoreConfig, env_default, parse_endpoints, tls_from_paths
from kviator.errors import KVStoreError
from kviator.log import DEFAULT_LEVEL, get_logger, setup_logging
from kviator.store import Store, new_store
from kviator.values import join_value, resolve_value

logger = get_logger(__name__)

EXIT_CONNECTION = 1
EXIT_PUT = 2
EXIT_GET = 3
EXIT_DELETE = 4
EXIT_CAS_KEY_SET = 5
EXIT_CAS_PUT = 6
EXIT_NOT_EXISTS = 7
EXIT_USAGE = 8
EXIT_DELETE_TREE = 10
EXIT_NO_SUBTREE = 11
EXIT_LIST = 11

ROOT_KEY = "/"

HELP_EPILOG = """
Commands:
  put           put a key value pair in the kvstore
  get           retrieve a key value pair from the kvstore
  del           removes a key value pair from the kvstore
  deltree       removes an entire tree structure in the kvstore
  list          list all kv of a given subtree/key.
  cas           put a key value pair in the keystore only when it's empty
  exists        returns true when key value pair exists

Arguments:
  key           The key. Required for all commands.
  val           The value. required for put and cas.

Note:

  kviator can also read the value from Stdin. The syntax would look like this:

    cmd | kviator ... put <key> -
    kviator ... put <key> - < val.file

  The - character is necessary to force kviator to read from Stdin. Without the -, Stdin
  is ignored.

  --kvstore, --client and the TLS options default to the KVIATOR_KVSTORE,
  KVIATOR_CLIENT, KVIATOR_CA_CERT, KVIATOR_CLIENT_CERT and KVIATOR_CLIENT_KEY
  environment variables.
"""


class CommandFailed(Exception):
    def __init__(self, exit_code: int, message: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.message = message


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage="%(prog)s --kvstore [consul|etcd|zookeper] --client <kv_addr> <command> <key> [<val>]",
        description=f"{APP_NAME} {__version__}\n\n"
                    f"{APP_NAME} is a cli client for accessing consul, etcd, or zookeper KV.",
        epilog=HELP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--kvstore", default=env_default("kvstore"),
                        help="the kvstore to connect to. Can be consul, etcd, or zookeper.")
    parser.add_argument("--client", default=env_default("client"),
                        help="the url of the kvstore (eg. localhost:8500), comma separated for several")
    parser.add_argument("--show-value", action="store_true",
                        help="show the value of the listed keys")
    parser.add_argument("--ca-cert", default=env_default("ca-cert"),
                        help="the path to the CA certificate to use for TLS")
    parser.add_argument("--client-cert", default=env_default("client-cert"),
                        help="the path to the client certificate to use for TLS")
    parser.add_argument("--client-key", default=env_default("client-key"),
                        help="the path to the client key to use for TLS")
    parser.add_argument("-v", "--verbose", action="store_true", help="log connection details to stderr")
    parser.add_argument("-d", "--debug", action="store_true", help="log everything to stderr")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {__version__}")

    parser.add_argument("command", nargs="?", default="")
    # everything after the command is an operand, even if it looks like a flag
    parser.add_argument("operands", nargs=argparse.REMAINDER)
    return parser


def load_config(args: argparse.Namespace) -> StoreConfig:
    return StoreConfig(
        kvstore=args.kvstore,
        endpoints=parse_endpoints(args.client),
        tls=tls_from_paths(args.ca_cert, args.client_cert, args.client_key),
    )


def _log_level(args: argparse.Namespace) -> str:
    if args.debug:
        return "DEBUG"
    if args.verbose:
        return "INFO"
    return DEFAULT_LEVEL


def _write_line(data: bytes) -> None:
    # stored values are written untouched, bypassing the text encoder
    out = sys.stdout
    out.flush()
    buffer = getattr(out, "buffer", None)
    if buffer is None:
        out.write(os.fsdecode(data) + "\n")
        return
    buffer.write(data + b"\n")
    buffer.flush()


# ---------- COMMANDS ----------

def cmd_put(store: Store, args: argparse.Namespace) -> None:
    try:
        store.put(args.key, args.value)
    except KVStoreError as exc:
        raise CommandFailed(EXIT_PUT, str(exc)) from exc


def cmd_get(store: Store, args: argparse.Namespace) -> None:
    try:
        pair = store.get(args.key)
    except KVStoreError as exc:
        raise CommandFailed(EXIT_GET, str(exc)) from exc
    _write_line(pair.value)


def cmd_del(store: Store, args: argparse.Namespace) -> None:
    try:
        store.delete(args.key)
    except KVStoreError as exc:
        raise CommandFailed(EXIT_DELETE, str(exc)) from exc


def cmd_deltree(store: Store, args: argparse.Namespace) -> None:
    try:
        store.delete_tree(args.key)
    except KVStoreError as exc:
        raise CommandFailed(EXIT_DELETE_TREE, str(exc)) from exc


def cmd_list(store: Store, args: argparse.Namespace) -> None:
    try:
        pairs = store.list(args.key)
    except KVStoreError as exc:
        raise CommandFailed(EXIT_LIST, str(exc)) from exc
    for pair in pairs:
        if args.show_value:
            _write_line(os.fsencode(pair.key) + b"=" + pair.value)
        else:
            _write_line(os.fsencode(pair.key))


def _key_present(store: Store, key: str) -> bool:
    # a failed lookup counts as an absent key
    try:
        return store.exists(key)
    except KVStoreError as exc:
        logger.info("lookup failed, treating key as absent", key=key, error=str(exc))
        return False


def cmd_cas(store: Store, args: argparse.Namespace) -> None:
    # presence check only, the stored value is never compared
    if _key_present(store, args.key):
        raise CommandFailed(EXIT_CAS_KEY_SET, "key is already set")
    try:
        store.put(args.key, args.value)
    except KVStoreError as exc:
        raise CommandFailed(EXIT_CAS_PUT, str(exc)) from exc


def cmd_exists(store: Store, args: argparse.Namespace) -> None:
    if not _key_present(store, args.key):
        raise CommandFailed(EXIT_NOT_EXISTS, "false")
    print("true")


COMMANDS: Dict[str, Callable[[Store, argparse.Namespace], None]] = {
    "put": cmd_put,
    "get": cmd_get,
    "del": cmd_del,
    "deltree": cmd_deltree,
    "list": cmd_list,
    "cas": cmd_cas,
    "exists": cmd_exists,
}

VALUE_COMMANDS = {"put", "cas"}


def resolve_operands(args: argparse.Namespace, stdin: Optional[IO] = None) -> None:
    """Set args.key and args.value from the positional operands.

    Runs before the connection is opened, so a deltree without a subtree
    never reaches the backend.
    """
    operands: List[str] = args.operands
    args.key = operands[0] if operands else ""
    args.value = b""

    if args.command in VALUE_COMMANDS:
        args.value = resolve_value(join_value(operands[1:]), stdin)

    if args.command == "deltree":
        if args.key == "":
            raise CommandFailed(EXIT_NO_SUBTREE, "Please specify subtree. To delete all, use /.")
        if args.key == ROOT_KEY:
            args.key = ""


def run(argv: Optional[List[str]] = None, stdin: Optional[IO] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(_log_level(args))

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help(sys.stdout)
        return EXIT_USAGE

    try:
        resolve_operands(args, stdin)

        try:
            store = new_store(load_config(args))
        except KVStoreError as exc:
            logger.debug("connection failed", kvstore=args.kvstore, client=args.client, exc_info=True)
            print(exc, file=sys.stderr)
            return EXIT_CONNECTION

        logger.info("running command", command=args.command, key=args.key)
        with store:
            handler(store, args)
    except CommandFailed as exc:
        logger.debug("command failed", command=args.command, exit_code=exc.exit_code)
        if exc.message:
            print(exc.message, file=sys.stderr)
        return exc.exit_code
    return 0


def main() -> None:
    sys.exit(run())

