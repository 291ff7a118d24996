import logging
import sys

LOG_FORMAT = "%(asctime)s - %(module)-10s - %(levelname)-8s - %(message)s"


def setup_logging(log_level):

    # setup log
    log_format = logging.Formatter(LOG_FORMAT)
    # configure the client logging
    log = logging.getLogger("")
    # has to be set to debug as is the root logger
    log.setLevel(log_level)

    # a second call (e.g. from tests driving main()) only changes the level
    for handler in log.handlers:
        if getattr(handler, "flow_runner", False):
            return

    # create console handler and set level to info
    ch = logging.StreamHandler(sys.stdout)
    ch.flow_runner = True  # type: ignore[attr-defined]
    # create formatter for console
    ch.setFormatter(log_format)
    log.addHandler(ch)
