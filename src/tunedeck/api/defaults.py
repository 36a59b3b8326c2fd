#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from pathlib import Path

DEFAULT_API_URL = "http://localhost:3010/api/proxy"
DEFAULT_CONFIG_PATH = Path("~").expanduser() / ".tunedeck" / "config"

DEFAULT_TOKEN_HEADER = "x-token"
DEFAULT_TIMEOUT = 30.0
DEFAULT_PAGE_SIZE = 10

# Poll intervals in seconds
DEFAULT_JOB_POLL_INTERVAL = 5.0
DEFAULT_DETAIL_POLL_INTERVAL = 3.0
DEFAULT_LOGS_POLL_INTERVAL = 5.0
DEFAULT_GPU_POLL_INTERVAL = 5.0
DEFAULT_DOC_TASK_POLL_INTERVAL = 5.0
DEFAULT_DOCKER_POLL_INTERVAL = 10.0

# Number of CUDA placeholders listed before the first GPU status arrived
DEFAULT_GPU_PLACEHOLDERS = 8
