import json
import logging
from datetime import datetime, timezone

PLUGIN = "regexblock"

# attributes every LogRecord has; anything else came in through `extra`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class PluginLogger(logging.LoggerAdapter):
    """
    Instance-owned logging handle.

    Every record is tagged with the plugin identity and the instance name.
    Extra key/value fields are passed as keyword arguments:

        log.info("Setting block", ip="1.2.3.4", path="/wp-login.php")

    Debug output is gated by the instance's own flag so that two middleware
    instances never change each other's verbosity.
    """

    def __init__(self, name: str, enable_debug: bool = False, logger: logging.Logger | None = None):
        super().__init__(logger or logging.getLogger(PLUGIN), {"plugin": PLUGIN, "pluginName": name})
        self.enable_debug = enable_debug

    def process(self, msg, kwargs):
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in ("exc_info", "stack_info", "stacklevel", "extra")}
        kwargs["extra"] = {**kwargs.get("extra", {}), **fields, **self.extra}
        return msg, kwargs

    def isEnabledFor(self, level):
        if level < logging.INFO and not self.enable_debug:
            return False
        return self.logger.isEnabledFor(level)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, msg, then the record's fields."""

    def format(self, record: logging.LogRecord) -> str:
        event = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                event[key] = value
        if record.exc_info:
            event["exc"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.DEBUG) -> logging.Logger:
    logger = logging.getLogger(PLUGIN)
    if not any(isinstance(h.formatter, JsonFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
