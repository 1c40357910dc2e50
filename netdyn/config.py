"""Environment-driven defaults.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

import os


# Threads used within each evaluation phase; 1 means serial execution.
NUM_WORKERS = int(os.environ.get("NETDYN_NUM_WORKERS", "1"))

# Attach the offending vertex/edge index to exceptions raised by local rules.
ANNOTATE_ERRORS = os.environ.get("NETDYN_ANNOTATE_ERRORS", "True") == "True"

DEFAULT_VERTEX_LABEL = "v"
DEFAULT_EDGE_LABEL = "e"
