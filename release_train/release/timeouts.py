from __future__ import annotations

# gh API operations (pr list/view/merge, run list)
GH_TIMEOUT_SECONDS = 60.0

# Local git operations (checkout, merge, add, commit)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (fetch, push)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
