from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .board import STATUS_COLUMNS, column_counts
from .config import ClientSettings, load_client_config
from .engine import SyncSession
from .errors import OperationResult
from .model import Task, TaskPriority, TaskStatus, UserRef


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def _write_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2) + '\n')


def _report(result: OperationResult[Any]) -> int:
    if result:
        return 0
    sys.stderr.write(f"{result.failure.message}\n")
    return 1


def _settings(args: argparse.Namespace) -> ClientSettings:
    settings, err = load_client_config(Path(args.config) if args.config else None)
    if err:
        sys.stderr.write(f"Config: {err}\n")
    if args.base_url:
        settings = settings.model_copy(update={'base_url': args.base_url})
    return settings


async def _authenticate(sync: SyncSession, args: argparse.Namespace) -> bool:
    token = args.token or os.getenv('TASKBOARD_TOKEN')
    if token:
        user_id = args.user_id or os.getenv('TASKBOARD_USER_ID') or 'me'
        sync.session.restore(token, UserRef(id=user_id))
        return True
    email = args.email or os.getenv('TASKBOARD_EMAIL')
    password = args.password or os.getenv('TASKBOARD_PASSWORD')
    if not email or not password:
        sys.stderr.write("Provide --token or --email/--password\n")
        return False
    result = await sync.session.login(email, password)
    if not result:
        sys.stderr.write(f"{result.failure.message}\n")
    return bool(result)


def _changes(args: argparse.Namespace) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for name in ('title', 'description', 'status', 'priority', 'due_date'):
        value = getattr(args, name, None)
        if value is not None:
            changes[name] = value
    if getattr(args, 'assign', None):
        changes['assigned_to'] = list(args.assign)
    return changes


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def render_board(board: dict[TaskStatus, list[Task]], console: Optional[Console] = None) -> None:
    console = console or Console()
    counts = column_counts(board)
    table = Table(title="Task Board", show_lines=True)
    for status in STATUS_COLUMNS:
        table.add_column(f"{status.value} ({counts[status]})")
    # cards within a column: most urgent first, server order otherwise
    columns = {status: sorted(board[status], key=lambda t: t.priority.sort_key) for status in STATUS_COLUMNS}
    depth = max(counts.values(), default=0)
    for row in range(depth):
        cells = []
        for status in STATUS_COLUMNS:
            column = columns[status]
            if row < len(column):
                task = column[row]
                due = task.due_on.isoformat() if task.due_on else "N/A"
                cells.append(f"[bold]{task.title}[/bold]\n{task.priority.value} · due {due}\n[dim]{task.id}[/dim]")
            else:
                cells.append("")
        table.add_row(*cells)
    console.print(table)


async def _board(sync: SyncSession, args: argparse.Namespace) -> int:
    result = await sync.coordinator.fetch_tasks()
    if not result:
        return _report(result)
    render_board(sync.board())
    return 0


async def _list(sync: SyncSession, args: argparse.Namespace) -> int:
    result = await sync.coordinator.fetch_tasks()
    if not result:
        return _report(result)
    tasks = sync.cache.list()
    if args.status:
        tasks = [task for task in tasks if task.status.value == args.status]
    _write_json({'tasks': [task.to_dict() for task in tasks]})
    return 0


async def _show(sync: SyncSession, args: argparse.Namespace) -> int:
    result = await sync.coordinator.fetch_task_by_id(args.task_id)
    if result:
        _write_json({'task': result.value.to_dict()})
    return _report(result)


async def _create(sync: SyncSession, args: argparse.Namespace) -> int:
    result = await sync.coordinator.create_task(_changes(args))
    if result:
        _write_json({'task': result.value.to_dict()})
    return _report(result)


async def _update(sync: SyncSession, args: argparse.Namespace) -> int:
    await sync.coordinator.fetch_tasks()
    result = await sync.coordinator.update_task(args.task_id, _changes(args))
    if result:
        _write_json({'task': result.value.to_dict()})
    return _report(result)


async def _move(sync: SyncSession, args: argparse.Namespace) -> int:
    loaded = await sync.coordinator.fetch_tasks()
    if not loaded:
        return _report(loaded)
    if args.task_id not in sync.cache:
        sys.stderr.write(f"Task {args.task_id} not found\n")
        return 1
    result = await sync.move(args.task_id, args.status)
    if result is None:
        _write_json({'moved': False, 'task_id': args.task_id})
        return 0
    if result:
        _write_json({'moved': True, 'task': result.value.to_dict()})
    return _report(result)


async def _delete(sync: SyncSession, args: argparse.Namespace) -> int:
    result = await sync.coordinator.delete_task(args.task_id)
    if result:
        _write_json({'deleted': True, 'task_id': args.task_id})
    return _report(result)


async def _comment(sync: SyncSession, args: argparse.Namespace) -> int:
    result = await sync.coordinator.add_comment(args.task_id, args.content)
    if result:
        _write_json({'comment': result.value.to_dict()})
    return _report(result)


async def _users(sync: SyncSession, args: argparse.Namespace) -> int:
    users = await sync.list_users()
    _write_json({'users': [user.to_dict() for user in users]})
    return 0


Handler = Callable[[SyncSession, argparse.Namespace], Awaitable[int]]


async def _run(handler: Handler, args: argparse.Namespace) -> int:
    async with SyncSession(_settings(args)) as sync:
        if not await _authenticate(sync, args):
            return 1
        return await handler(sync, args)


def _add_task_fields(parser: argparse.ArgumentParser, *, creating: bool) -> None:
    parser.add_argument('--title', required=creating)
    parser.add_argument('--description')
    parser.add_argument('--status', choices=[s.value for s in TaskStatus])
    parser.add_argument('--priority', choices=[p.value for p in TaskPriority])
    parser.add_argument('--due', dest='due_date', help='Due date (YYYY-MM-DD)')
    parser.add_argument('--assign', action='append', metavar='USER_ID', help='Assign a user (repeatable)')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='taskboard', description='Task board client')
    parser.add_argument('--config', default=None, help='Config file (default: ./.taskboard.yaml)')
    parser.add_argument('--base-url', default=None, help='API root, e.g. http://localhost:5000/api')
    parser.add_argument('--token', default=None, help='Bearer token (or TASKBOARD_TOKEN)')
    parser.add_argument('--user-id', default=None, help='User id that owns --token')
    parser.add_argument('--email', default=None)
    parser.add_argument('--password', default=None)
    parser.add_argument('--log-level', default=None)
    subparsers = parser.add_subparsers(dest='command', required=True)

    board = subparsers.add_parser('board', help='Show the task board')
    board.set_defaults(func=_board)

    tlist = subparsers.add_parser('list', help='List tasks as JSON')
    tlist.add_argument('--status', choices=[s.value for s in TaskStatus])
    tlist.set_defaults(func=_list)

    show = subparsers.add_parser('show', help='Show one task')
    show.add_argument('task_id')
    show.set_defaults(func=_show)

    create = subparsers.add_parser('create', help='Create a task')
    _add_task_fields(create, creating=True)
    create.set_defaults(func=_create)

    update = subparsers.add_parser('update', help='Update a task')
    update.add_argument('task_id')
    _add_task_fields(update, creating=False)
    update.set_defaults(func=_update)

    move = subparsers.add_parser('move', help='Move a task to another column')
    move.add_argument('task_id')
    move.add_argument('status', choices=[s.value for s in TaskStatus])
    move.set_defaults(func=_move)

    delete = subparsers.add_parser('delete', help='Delete a task')
    delete.add_argument('task_id')
    delete.set_defaults(func=_delete)

    comment = subparsers.add_parser('comment', help='Comment on a task')
    comment.add_argument('task_id')
    comment.add_argument('content')
    comment.set_defaults(func=_comment)

    users = subparsers.add_parser('users', help='List users available for assignment')
    users.set_defaults(func=_users)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    configure_logging(args.log_level or os.getenv('TASKBOARD_LOG_LEVEL') or 'WARNING')
    return int(asyncio.run(_run(handler, args)) or 0)


if __name__ == '__main__':
    raise SystemExit(main())
