import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(camera)s] %(message)s"


class CameraNameFilter(logging.Filter):
    """Stamps every record with the camera it came from (``%(camera)s``)."""

    def __init__(self, camera_name: str):
        super().__init__()
        self.camera_name = camera_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera = self.camera_name
        return True


def _tagged(handler: logging.Handler, camera_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CameraNameFilter(camera_name))
    return handler


def setup_logger(camera_name: str, level: int = logging.INFO) -> logging.Logger:
    """Per-camera logger under ``marker_tracking.<camera>`` with a console handler."""
    logger = logging.getLogger(f"marker_tracking.{camera_name}")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(_tagged(logging.StreamHandler(), camera_name))
    return logger


def add_file_handler(logger: logging.Logger, camera_name: str, log_path: str) -> logging.FileHandler:
    """Mirror the logger into a session log file; the caller removes it when done."""
    handler = _tagged(logging.FileHandler(log_path, encoding="utf-8"), camera_name)
    logger.addHandler(handler)
    return handler
