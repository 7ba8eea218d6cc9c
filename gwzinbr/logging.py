"""Package logger. A thin wrapper over the standard library `logging` module that prefixes every message with an
indentation marker, and reports the time taken by the bandwidth search.
"""
import logging
import sys
import time


def silence_logger(name):
    """Given a logger name, silence it completely.

    Args:
        name: Name of the logger
    """
    package_logger = logging.getLogger(name)
    package_logger.setLevel(logging.CRITICAL + 100)
    package_logger.propagate = False


def format_logging_message(msg, logging_level, indent_level=1, indent_space_num=6):
    prefix = "|" + ("-" * indent_space_num * indent_level)[1:]
    if logging_level == logging.INFO:
        prefix += ">"
    elif logging_level == logging.WARNING:
        prefix += "?"
    elif logging_level == logging.DEBUG:
        prefix += ">>>"
    return prefix + " " + str(msg)


class Logger:
    """Stdout logger of one namespace, with a timer for finished-in reports."""

    FORMAT = "%(message)s"

    def __init__(self, namespace="gwzinbr", level=logging.INFO):
        self.namespace = namespace
        self.logger = logging.getLogger(namespace)
        self.previous_timestamp = time.time()
        self.time_passed = 0.0

        # Only one stream handler per namespace:
        if len(self.logger.handlers) == 0:
            self.stream_handler = logging.StreamHandler(sys.stdout)
            self.stream_handler.setFormatter(logging.Formatter(self.FORMAT))
            self.logger.addHandler(self.stream_handler)
        else:
            self.stream_handler = self.logger.handlers[0]

        self.logger.propagate = False
        self.logger.setLevel(level)
        silence_logger("joblib")

    def debug(self, message, indent_level=1):
        self.logger.debug(format_logging_message(message, logging.DEBUG, indent_level=indent_level))

    def info(self, message, indent_level=1):
        self.logger.info(format_logging_message(message, logging.INFO, indent_level=indent_level))

    def warning(self, message, indent_level=1):
        self.logger.warning(format_logging_message(message, logging.WARNING, indent_level=indent_level))

    def log_time(self):
        now = time.time()
        self.time_passed = now - self.previous_timestamp
        self.previous_timestamp = now
        return self.time_passed

    def finish_progress(self, progress_name, indent_level=1):
        """Log the time elapsed since the last call to :meth:`log_time`."""
        self.log_time()
        self.info("[%s] finished [%.4fs]" % (progress_name, self.time_passed), indent_level=indent_level)
        self.stream_handler.flush()


class LoggerManager:
    def __init__(self, namespace: str = "gwzinbr"):
        self.namespace = namespace
        self.main_logger = Logger(namespace)

    def main_set_level(self, level):
        self.main_logger.logger.setLevel(level)

    def main_info(self, message, indent_level=1):
        self.main_logger.info(message, indent_level)

    def main_debug(self, message, indent_level=1):
        self.main_logger.debug(message, indent_level)

    def main_warning(self, message, indent_level=1):
        self.main_logger.warning(message, indent_level)

    def main_log_time(self):
        self.main_logger.log_time()

    def main_finish_progress(self, progress_name):
        self.main_logger.finish_progress(progress_name)


logger_manager = LoggerManager()
