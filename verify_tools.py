#!/usr/bin/env python
"""
Live verification script for the Todoist MCP gateway.
Runs the Create-Read-Update-Delete lifecycle of the main resources against
the real account behind the configured Nango connection.
"""

import asyncio
import logging
import uuid

from todoist_mcp.config import Settings
from todoist_mcp.todoist_client import TodoistGateway

# Setup logging
logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def check(result, label):
    if not result.ok:
        raise RuntimeError(f"{label}: {result.error}")
    print(f"✅ {label}")
    return result.data


async def run_verification():
    settings = Settings()
    print(f"Starting verification through Nango at {settings.NANGO_BASE_URL}...")

    # 1. Startup token
    try:
        gateway = await TodoistGateway.connect(settings)
        print("✅ Access token obtained")
    except Exception as e:
        print(f"❌ Initialization failed: {e}")
        return

    # 2. Project lifecycle
    print("\n--- Testing Project ---")
    try:
        project = check(await gateway.create_project(f"Verify Project {uuid.uuid4()}"),
                        "Created Project")["project"]
        pid = project["id"]
        check(await gateway.update_project(pid, name="Updated Project Name"), "Updated Project")
        check(await gateway.archive_project(pid), "Archived Project")
        check(await gateway.unarchive_project(pid), "Unarchived Project")
    except Exception as e:
        print(f"❌ Project failed: {e}")
        return

    # 3. Section and task lifecycle
    print("\n--- Testing Task ---")
    try:
        section = check(await gateway.create_section("Verify Section", pid),
                        "Created Section")["section"]
        task = check(await gateway.create_task(f"Verify Task {uuid.uuid4()}",
                                               project_id=pid, section_id=section["id"],
                                               due_string="tomorrow"),
                     "Created Task")["task"]
        check(await gateway.get_task(task["id"]), "Retrieved Task")
        check(await gateway.update_task(task["id"], content="Updated Task Name"), "Updated Task")
        check(await gateway.complete_task(task["id"]), "Completed Task")
        check(await gateway.reopen_task(task["id"]), "Reopened Task")

        comment = check(await gateway.create_comment("Verify comment", task_id=task["id"]),
                        "Created Comment")["comment"]
        check(await gateway.update_comment(comment["id"], "Edited comment"), "Updated Comment")
        check(await gateway.delete_comment(comment["id"]), "Deleted Comment")

        check(await gateway.delete_task(task["id"]), "Deleted Task")
        check(await gateway.delete_section(section["id"]), "Deleted Section")
    except Exception as e:
        print(f"❌ Task failed: {e}")

    # 4. Labels
    print("\n--- Testing Labels ---")
    try:
        label = check(await gateway.create_label(f"verify-{uuid.uuid4().hex[:8]}"),
                      "Created Label")["label"]
        check(await gateway.update_label(label["id"], color="red"), "Updated Label")
        check(await gateway.delete_label(label["id"]), "Deleted Label")
        shared = check(await gateway.get_shared_labels(), "Listed Shared Labels")
        print(f"   {len(shared['labels'])} shared labels")
    except Exception as e:
        print(f"❌ Labels failed: {e}")

    # 5. Cleanup
    try:
        check(await gateway.delete_project(pid), "Deleted Project")
    except Exception as e:
        print(f"❌ Cleanup failed: {e}")

    print("\nVerification Complete.")


if __name__ == "__main__":
    asyncio.run(run_verification())
