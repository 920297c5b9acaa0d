import logging
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s"

# client libraries that log every discovery fetch and HTTP retry at INFO
NOISY_LOGGERS = ("googleapiclient.discovery", "googleapiclient.discovery_cache", "urllib3")


def _log_file(app) -> str:
    log_dir = app.config.get("LOG_DIR") or os.path.join(os.path.dirname(__file__), "..", "logs")
    os.makedirs(log_dir, exist_ok=True)
    return os.path.abspath(os.path.join(log_dir, "app.log"))


def init_logging(app):
    """Send makerspace logs to ``LOG_DIR/app.log`` and the console.

    Safe to call once per ``create_app()``: the file handler for a given
    path is attached to the root logger only once.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = _log_file(app)

    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    has_file = any(
        isinstance(h, logging.FileHandler) and h.baseFilename == log_file for h in root.handlers
    )
    if not has_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    app.logger = logging.getLogger("makerspace")
    app.logger.setLevel(level)
    app.logger.info("Logging initialized at %s level -> %s", level_name, log_file)
