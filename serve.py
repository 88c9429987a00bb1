import argparse
import asyncio
import base64
import logging
import os

from kvexplorer.config import ExplorerConfig
from kvexplorer.query import QueryExecutor, QuerySpec
from kvexplorer.store import Store
from kvexplorer.uploads import UploadSessions
from rpc_server.request import Request
from rpc_server.server import RPCServer

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger()


def build_server(config: ExplorerConfig) -> tuple[RPCServer, Store]:
    store = Store(
        memtable_threshold=config.memtable_threshold,
        fsync_interval_ms=config.fsync_interval_ms,
    )
    server = RPCServer(config.host, config.port)
    register_handlers(server, store, config)
    return server, store


def register_handlers(server: RPCServer, store: Store, config: ExplorerConfig) -> None:
    executor = QueryExecutor(
        store,
        default_limit=config.page_size,
        default_preview_chars=config.preview_chars,
    )
    sessions = UploadSessions(store)
    backup_dir = config.backup_path if config.auto_backup_on_write else None

    @server.route('open_db')
    async def open_db(request: Request) -> None:
        await store.open(request.require_str("path"))

    @server.route('list_keys')
    async def list_keys(request: Request) -> dict:
        query = QuerySpec(
            pattern=request.get_str("prefix"),
            mode=request.get_str("mode", "prefix"),
            sort_descending=request.get_str("sort", "asc") == "desc",
            limit=request.get_int("limit"),
            offset=request.get_int("offset"),
            start_key=request.get_str("start_key") or None,
            preview_chars=request.get_int("preview_chars"),
        )
        result = await executor.list_keys(query)
        return result.to_dict()

    @server.route('get_value')
    async def get_value(request: Request) -> dict:
        value = await store.get(request.get_str("key"))
        return {"value": base64.b64encode(value).decode("ascii")}

    @server.route('put_value')
    async def put_value(request: Request) -> None:
        # The envelope id of this request names the upload session
        await sessions.init(
            request.id,
            declared_length=request.get_int("value_length"),
            declared_key=request.get_str("key"),
        )

    @server.route('put_chunk')
    async def put_chunk(request: Request) -> None:
        await sessions.append(
            request.require_str("id"),
            request.get_int("chunk_index"),
            request.get_str("data"),
        )

    @server.route('put_commit')
    async def put_commit(request: Request) -> None:
        await sessions.commit(
            request.require_str("id"),
            request.get_str("key"),
            ttl_seconds=request.get_int("ttl"),
            backup_dir=backup_dir,
        )

    @server.route('delete_key')
    async def delete_key(request: Request) -> None:
        key = request.get_str("key")
        if backup_dir is not None:
            await store.backup_value(key, backup_dir)
        await store.delete(key)

    @server.route('close_db')
    async def close_db(request: Request) -> None:
        await store.close()


async def main(tcp: bool = False):
    config = ExplorerConfig.from_env()
    server, store = build_server(config)
    logger.debug(f"Registered handlers: {sorted(server.routes)}")

    try:
        if tcp:
            await server.start()
        else:
            await server.serve_stdio()
    finally:
        await store.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Serve the KV explorer line protocol")
    parser.add_argument(
        "--tcp",
        action="store_true",
        help="listen on KVX_HOST:KVX_PORT instead of serving stdin/stdout",
    )
    args = parser.parse_args()

    try:
        asyncio.run(main(tcp=args.tcp))
    except KeyboardInterrupt:
        pass
