# ZenSync Default Configuration
# Full default configuration as Python dict and YAML generator

import copy
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "api": {
        "base_url": "https://api.zenmoney.ru",
        "token_env": "ZENMONEY_TOKEN",
        "timeout": 30.0,
        "verify_tls": True,
    },
    "storage": {
        "backend": "file",
        "path": "~/.config/zensync",
    },
    "sync": {
        "concurrency": "reject",
        "full_sync_absence_deletes": True,
        "force_fetch": [],
        "tombstone_retention": 2592000,
    },
    "output": {
        "verbose": False,
        "colored": True,
    },
}


def get_default_config() -> dict[str, Any]:
    """Deep copy of the defaults, safe to mutate."""
    return copy.deepcopy(DEFAULT_CONFIG)


def generate_default_config() -> str:
    """Generate default configuration as YAML string with comments."""
    header = """# ZenSync Configuration
#
# Local mirror of a ZenMoney account.
#
# api.token is read from the environment variable named by api.token_env
# unless set here directly.
#
# sync.concurrency:
#   - reject: a second sync while one runs fails with SyncInProgress
#   - block:  a second sync waits for the running one to finish
#
# sync.full_sync_absence_deletes:
#   On full sync, cached records missing from the server listing are removed.
#
# sync.tombstone_retention:
#   Seconds of server time a deletion record is kept in the snapshot.
#   0 keeps them forever.

"""
    return header + yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False, allow_unicode=True)
