"""
agentplan status - Show the active plan and its tasks.
"""

from agentplan.commands.common import EXIT_OK, print_statistics, report_failure
from agentplan.workflow.engine import PlanEngine


def cmd_status(args, engine: PlanEngine) -> int:
    result = engine.status()
    if not result.ok:
        return report_failure(result)

    value = result.value
    if not value["locked"]:
        print(f"Plan: {value['planId']} (draft)")
        if value["hasPlanFile"]:
            print("PROJECT-PLAN.json is written. Run: agentplan plan lock")
        else:
            print("Waiting for PROJECT-PLAN.json")
        return EXIT_OK

    print(f"Plan:    {value['planId']}")
    print(f"Project: {value['projectName']}")
    print(f"Locked:  {value['lockedAt']}")
    print(f"Active:  {value['activeTask'] or '-'}")
    print()
    print_statistics(value["statistics"])
    print()

    print(f"{'ID':<10} {'STATUS':<12} {'PHASE':<15} TITLE")
    print("-" * 80)
    for row in value["tasks"]:
        status = "deprecated" if row.get("deprecated") else row["status"]
        marker = "*" if row["id"] == value["activeTask"] else " "
        print(f"{row['id']:<10} {status:<12} {row.get('phase', ''):<15}{marker}{row['title']}")
    print("-" * 80)

    if value["ready"]:
        print(f"Ready: {', '.join(value['ready'])}")
    if value["amendments"]:
        print(f"Amendments: {value['amendments']} (agentplan plan history)")
    return EXIT_OK
