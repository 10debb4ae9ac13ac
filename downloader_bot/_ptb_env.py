"""python-telegram-bot environment flags.

Imported first by the entrypoint so the flags are set before PTB loads.
"""

from __future__ import annotations

import os

# RetryAfter.retry_after as a timedelta; utils.safe_edit_message expects it.
os.environ.setdefault("PTB_TIMEDELTA", "1")
