from __future__ import annotations

import json
import sys
from datetime import datetime, timezone

from loguru import logger


def _json_sink(message) -> None:
    record = message.record
    payload = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'level': record['level'].name,
        'module': record['module'],
        'function': record['function'],
        'line': record['line'],
        'message': record['message'],
        'extra': record['extra'],
    }
    if record['exception'] is not None:
        payload['exception'] = repr(record['exception'].value)
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + '\n')


def configure_logging(level: str = 'INFO', *, json_output: bool = True) -> None:
    logger.remove()
    if json_output:
        logger.add(
            _json_sink,
            level=level,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )
        return
    logger.add(
        sys.stderr,
        level=level,
        format='{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message} | {extra}',
        backtrace=False,
        diagnose=False,
    )
