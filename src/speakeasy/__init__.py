"""
SpeakEasy Door Control
======================

Core package for the `/speakeasy` Slack command, which lets members check
and unlock the SpeakEasy doors through the KISI access-control API.

Lambda entry points live beside this package:
- proxy.py    → API Gateway endpoint for the slash command; acks Slack
                within its 3 second window and hands work to the worker
- worker.py   → runs the command pipeline and replies via `response_url`
- health.py   → health check (/healthz)

Modules under this package:
- pipeline.py   → stage list and the fold that runs it
- auth.py       → Slack token check and user lookup
- rate_limit.py → cooldown / sliding-window policies
- login.py      → KISI credential rotation and sign-in
- commands.py   → command parsing, help text, status / checkout / unlock
- store.py      → DynamoDB get / conditional update / scan
- lock_api.py   → KISI sign_in / peek / unlock
- relay.py      → delivering replies to Slack
- config.py, catalog.py, models.py, state.py, errors.py, logger.py

Environment variables are listed in the load_config docstring (config.py).
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
