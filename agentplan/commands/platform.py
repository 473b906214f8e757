"""
agentplan platform - Show the detected issue tracker and its settings.
"""

from agentplan.commands.common import EXIT_OK
from agentplan.git.remote import get_remote_url
from agentplan.workflow.engine import PlanEngine


def cmd_platform(args, engine: PlanEngine) -> int:
    info = engine.router.describe()

    print(f"Remote:     {get_remote_url(engine.ctx.root) or '(none)'}")
    print(f"Platform:   {info['name']}")
    print(f"Configured: {'yes' if info['isConfigured'] else 'no'}")
    if "repository" in info:
        print(f"Repository: {info['repository'] or '(unknown)'}")
    if "organization" in info:
        print(f"Org:        {info['organization'] or '(unset)'}")
        print(f"Project:    {info['project'] or '(unset)'}")
    if info["platform"] != "none":
        print(f"Auto:       create={info['autoCreate']} update={info['autoUpdate']} close={info['autoClose']}")
    if not info["isConfigured"]:
        print()
        print("Tasks are tracked locally only.")
    return EXIT_OK
