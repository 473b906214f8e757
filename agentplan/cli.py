#!/usr/bin/env python3
"""agentplan CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from agentplan.commands import plan as cmd_plan_module
from agentplan.commands import platform as cmd_platform_module
from agentplan.commands import status as cmd_status_module
from agentplan.commands import sync as cmd_sync_module
from agentplan.commands import task as cmd_task_module
from agentplan.commands.common import EXIT_UNEXPECTED
from agentplan.lib.config import ProjectContext
from agentplan.workflow.engine import PlanEngine

logger = logging.getLogger("agentplan")


def get_engine(args) -> PlanEngine:
    """Build the engine for --root, or the current directory."""
    root = Path(args.root) if args.root else Path.cwd()
    return PlanEngine(ProjectContext.load(root))


def cmd_plan(args):
    return cmd_plan_module.cmd_plan(args, get_engine(args))


def cmd_plan_lock(args):
    return cmd_plan_module.cmd_plan_lock(args, get_engine(args))


def cmd_plan_archive(args):
    return cmd_plan_module.cmd_plan_archive(args, get_engine(args))


def cmd_plan_amend(args):
    return cmd_plan_module.cmd_plan_amend(args, get_engine(args))


def cmd_plan_history(args):
    return cmd_plan_module.cmd_plan_history(args, get_engine(args))


def cmd_task_start(args):
    return cmd_task_module.cmd_task_start(args, get_engine(args))


def cmd_task_next(args):
    return cmd_task_module.cmd_task_next(args, get_engine(args))


def cmd_task_done(args):
    return cmd_task_module.cmd_task_done(args, get_engine(args))


def cmd_task_reset(args):
    return cmd_task_module.cmd_task_reset(args, get_engine(args))


def cmd_task_status(args):
    return cmd_task_module.cmd_task_status(args, get_engine(args))


def cmd_task_ready(args):
    return cmd_task_module.cmd_task_ready(args, get_engine(args))


def cmd_status(args):
    return cmd_status_module.cmd_status(args, get_engine(args))


def cmd_sync(args):
    return cmd_sync_module.cmd_sync(args, get_engine(args))


def cmd_platform(args):
    return cmd_platform_module.cmd_platform(args, get_engine(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='agentplan', description='Plan and task lifecycle for AI-assisted delivery')
    parser.add_argument('--root', '-C', help='Project root (default: current directory)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log what the engine is doing')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # agentplan plan
    p_plan = subparsers.add_parser('plan', help='Create, lock or show the active plan')
    p_plan.set_defaults(func=cmd_plan, description=None)
    plan_sub = p_plan.add_subparsers(dest='plan_cmd')

    # agentplan plan new (also: agentplan plan "<requirements>")
    p_plan_new = plan_sub.add_parser('new', help='Start a plan from requirements')
    p_plan_new.add_argument('description', nargs='?', help='Project requirements (read from stdin if omitted)')
    p_plan_new.set_defaults(func=cmd_plan)

    # agentplan plan lock
    p_plan_lock = plan_sub.add_parser('lock', help='Validate PROJECT-PLAN.json and create tasks')
    p_plan_lock.set_defaults(func=cmd_plan_lock)

    # agentplan plan archive
    p_plan_archive = plan_sub.add_parser('archive', help='Archive the active plan')
    p_plan_archive.add_argument('--reason', '-r', help='Why the plan is archived')
    p_plan_archive.set_defaults(func=cmd_plan_archive)

    # agentplan plan amend
    p_plan_amend = plan_sub.add_parser('amend', help='Change the locked plan (logged)')
    p_plan_amend.add_argument('task_id', nargs='?', help='Task to amend (e.g., TASK-003)')
    p_plan_amend.add_argument('--field', '-f', help='Field to set (title, description, phase, estimatedHours, '
                                                    'dependencies, completionCriteria, status)')
    p_plan_amend.add_argument('--value', help='New value (parsed as JSON when possible)')
    p_plan_amend.add_argument('--add', metavar='TASK_JSON', help='Add a task (JSON object or a title)')
    p_plan_amend.add_argument('--deprecate', action='store_true', help='Retire the task')
    p_plan_amend.add_argument('--reason', '-r', required=True, help='Why the plan changes')
    p_plan_amend.add_argument('--by', help='Who is amending')
    p_plan_amend.set_defaults(func=cmd_plan_amend)

    # agentplan plan history
    p_plan_history = plan_sub.add_parser('history', help='Show the amendment log')
    p_plan_history.set_defaults(func=cmd_plan_history)

    # agentplan task
    p_task = subparsers.add_parser('task', help='Work on tasks')
    task_sub = p_task.add_subparsers(dest='task_cmd', required=True)

    # agentplan task start
    p_task_start = task_sub.add_parser('start', help='Start a task')
    p_task_start.add_argument('task_id', help='Task ID (e.g., TASK-001)')
    p_task_start.set_defaults(func=cmd_task_start)

    # agentplan task next
    p_task_next = task_sub.add_parser('next', help='Start the next ready task')
    p_task_next.set_defaults(func=cmd_task_next)

    # agentplan task done
    p_task_done = task_sub.add_parser('done', help='Complete the active task')
    p_task_done.add_argument('--comment', '-m', help='Comment for the tracker item')
    p_task_done.set_defaults(func=cmd_task_done)

    # agentplan task reset
    p_task_reset = task_sub.add_parser('reset', help='Return a task to pending')
    p_task_reset.add_argument('task_id', help='Task ID')
    p_task_reset.add_argument('--force', action='store_true', help='Also reset a completed task')
    p_task_reset.set_defaults(func=cmd_task_reset)

    # agentplan task status
    p_task_status = task_sub.add_parser('status', help='Show a task (active task by default)')
    p_task_status.add_argument('task_id', nargs='?', help='Task ID')
    p_task_status.set_defaults(func=cmd_task_status)

    # agentplan task ready
    p_task_ready = task_sub.add_parser('ready', help='List tasks that can start now')
    p_task_ready.set_defaults(func=cmd_task_ready)

    # agentplan status
    p_status = subparsers.add_parser('status', help='Show plan status')
    p_status.set_defaults(func=cmd_status)

    # agentplan sync
    p_sync = subparsers.add_parser('sync', help='Mirror tasks into the issue tracker')
    p_sync.set_defaults(func=cmd_sync)

    # agentplan platform
    p_platform = subparsers.add_parser('platform', help='Show the detected issue tracker')
    p_platform.set_defaults(func=cmd_platform)

    return parser


PLAN_SUBCOMMANDS = {'new', 'lock', 'archive', 'amend', 'history'}


def route_plan_description(argv: list[str]) -> list[str]:
    """Rewrite `plan "<requirements>"` to `plan new "<requirements>"`."""
    argv = list(argv)
    i = 0
    while i < len(argv):
        token = argv[i]
        if token in ('--root', '-C'):
            i += 2
            continue
        if token.startswith('-'):
            i += 1
            continue
        if token == 'plan' and i + 1 < len(argv):
            following = argv[i + 1]
            if following not in PLAN_SUBCOMMANDS and not following.startswith('-'):
                argv.insert(i + 1, 'new')
        break
    return argv


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(route_plan_description(sys.argv[1:] if argv is None else argv))

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        return args.func(args)
    except Exception as e:
        logger.exception("Unexpected failure")
        print(f"ERROR: Unexpected failure: {e}")
        return EXIT_UNEXPECTED


if __name__ == '__main__':
    sys.exit(main())
