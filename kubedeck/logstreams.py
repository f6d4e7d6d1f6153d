"""Emit log records as JSON lines.

Callers attach structured metadata by passing a dict as the only argument,
eg `logit.info("Cannot reconcile", {"namespace": "default"})`. The formatter
merges that dict into the JSON document.
"""

import json
import logging
import sys
from datetime import UTC, datetime


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        out = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Merge the metadata dict, if there is one.
        if isinstance(record.args, dict):
            out.update({k: v for k, v in record.args.items() if k not in out})

        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return json.dumps(out, default=str)


def setup(level: str) -> None:
    """Install the JSON formatter on the root logger with `level` severity."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level.upper())
