#!/usr/bin/env python3
"""Queue the first reminder sweep. Each sweep schedules the next one.

Needs a worker started with the scheduler enabled:

    rq worker notifications --with-scheduler
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from leadengine.services.dispatch import TaskDispatcher


def main():
    if not TaskDispatcher().schedule_reminder_sweep(delay=0):
        print("Could not reach the queue; is Redis running?")
        sys.exit(1)
    print("Reminder sweep queued.")


if __name__ == "__main__":
    main()
