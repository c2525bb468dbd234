"""folder-index command line interface.

    folder-index watch NAME PATH   register (if needed) and keep indexing until Ctrl-C
    folder-index index NAME        run one embedding job and wait for it
    folder-index list              show registered folders
    folder-index status NAME       show persisted tree and embedding state
    folder-index remove NAME       unregister and delete all rows
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from folder_index.exceptions import FolderIndexError
from folder_index.paths import CONFIG_PATH, DATABASE_PATH
from folder_index.schemas.config import load_config
from folder_index.schemas.progress import TERMINAL_PHASES, TaskProgressState
from folder_index.services.indexer import FolderIndexService

__all__ = [
    'main',
]

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(prog='folder-index', description='Incremental folder indexing and embedding')
    parser.add_argument('--config', type=Path, default=CONFIG_PATH, help=f'Config file (default: {CONFIG_PATH})')
    parser.add_argument('--db', type=Path, default=DATABASE_PATH, help=f'SQLite database (default: {DATABASE_PATH})')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    commands = parser.add_subparsers(dest='command', required=True)

    watch = commands.add_parser('watch', help='Register a folder and keep it indexed')
    watch.add_argument('name')
    watch.add_argument('path', type=Path)

    index = commands.add_parser('index', help='Run one embedding job')
    index.add_argument('name')

    commands.add_parser('list', help='List registered folders')

    status = commands.add_parser('status', help='Show folder state')
    status.add_argument('name')

    remove = commands.add_parser('remove', help='Unregister a folder')
    remove.add_argument('name')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )
    # Silence noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    except (FolderIndexError, ValueError) as e:
        print(f'Error: {e}', file=sys.stderr)
        sys.exit(1)


async def _run(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    service = await FolderIndexService.create(config, database_path=args.db)
    try:
        match args.command:
            case 'watch':
                await _watch(service, args.name, args.path)
            case 'index':
                await _index(service, args.name)
            case 'list':
                for folder in await service.list_folders():
                    print(f'{folder.name}\t{folder.root_path}')
            case 'status':
                await _status(service, args.name)
            case 'remove':
                if not await service.unregister_folder(args.name):
                    raise FolderIndexError(f"Folder '{args.name}' is not registered")
                print(f'Removed {args.name}')
    finally:
        await service.close()


async def _watch(service: FolderIndexService, name: str, path: Path) -> None:
    service.progress.subscribe(_print_progress)
    folder = await service.get_folder(name)
    if folder is None:
        await service.register_folder(name, path)
    elif folder.root_path != path.expanduser().resolve():
        await service.update_folder(name, path)
    await service.start()
    logger.info(f'Watching {name}; press Ctrl-C to stop')
    await asyncio.Event().wait()


async def _index(service: FolderIndexService, name: str) -> None:
    service.progress.subscribe(_print_progress)
    job = await service.schedule_indexing(name)
    await job.wait()
    state = service.get_progress(name)
    if state.phase == 'error':
        raise FolderIndexError(state.error or 'Failed to build embeddings')


async def _status(service: FolderIndexService, name: str) -> None:
    folder = await service.get_folder(name)
    if folder is None:
        raise FolderIndexError(f"Folder '{name}' is not registered")
    tree = await service.detector.build(folder)
    print(f'Folder:     {folder.name}')
    print(f'Root:       {folder.root_path}')
    print(f'Root hash:  {tree.root_hash}')
    print(f'Files:      {len(tree.file_hashes())}')
    print(f'Embeddings: {await service.embedding_count(name)}')


def _print_progress(folder_name: str, state: TaskProgressState | None) -> None:
    if state is None:
        return
    line = f'[{folder_name}] {state.phase} {state.percent:.0f}% {state.message or ""}'
    if state.phase in TERMINAL_PHASES and state.error:
        line += f' ({state.error})'
    print(line, file=sys.stderr)


if __name__ == '__main__':
    main()
