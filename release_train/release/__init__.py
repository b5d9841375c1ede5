"""Release bounded context.

- registry: packages and their dependency rank
- gateway: the only door to external commands
- gh: PR host and CI adapters
- discovery, conflicts, waiter: the steps of one package release
- orchestrator: the run itself
"""

from __future__ import annotations
