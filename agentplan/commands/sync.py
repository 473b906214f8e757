"""
agentplan sync - Mirror every task into the issue tracker.
"""

from agentplan.commands.common import EXIT_OK, print_warnings, report_failure
from agentplan.platform.detector import platform_name
from agentplan.workflow.engine import PlanEngine


def cmd_sync(args, engine: PlanEngine) -> int:
    result = engine.sync_external()
    if not result.ok:
        return report_failure(result)

    value = result.value
    if not value["configured"]:
        print(f"Platform: {platform_name(value['platform'])}, not configured. Nothing to sync.")
        print("Run `agentplan platform` to see what is missing.")
        return EXIT_OK

    print_warnings(result)
    print(f"Synced with {platform_name(value['platform'])}")
    print(f"  Created: {len(value['created'])}" + (f" ({', '.join(value['created'])})" if value["created"] else ""))
    print(f"  Updated: {len(value['updated'])}")
    if result.warnings:
        print(f"  Failed:  {len(result.warnings)}")
    return EXIT_OK
