import datetime
import logging
import sys
from contextvars import ContextVar
from logging import Logger
from typing import Any

from pythonjsonlogger.json import JsonFormatter

import imgserve

LOGGER_NAME = 'imgserve'

# Fields describing the request being served, attached to every record.
log_context: ContextVar[dict[str, Any]] = ContextVar('log_context', default={})


class LogFormatter(JsonFormatter):

  def __init__(self) -> None:
    super().__init__(json_ensure_ascii=False)

  def add_fields(self, log_record: Any, record: Any, message_dict: Any) -> None:
    log_record.update(log_context.get())
    log_record['_ts'] = datetime.datetime.fromtimestamp(
        record.created, datetime.UTC).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
    log_record['level'] = record.levelname
    log_record['logger'] = record.name
    log_record['version'] = imgserve.version

    super().add_fields(log_record, record, message_dict)


def init_logging(level: int = logging.DEBUG) -> Logger:
  logging.getLogger('botocore').setLevel(logging.WARNING)
  logging.getLogger('urllib3').setLevel(logging.INFO)

  log = logging.getLogger(LOGGER_NAME)
  log.setLevel(level)
  for h in list(log.handlers):
    log.removeHandler(h)

  log_handler = logging.StreamHandler()
  log_handler.setFormatter(LogFormatter())
  log_handler.setLevel(level)
  log_handler.setStream(sys.stderr)
  log.addHandler(log_handler)
  log.propagate = False

  return log
