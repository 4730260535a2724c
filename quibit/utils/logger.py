import logging
import sys
from quibit.utils.config import config

# Third-party clients (httpx, google-genai, pymongo) stay quiet unless they error
logging.basicConfig(level=logging.ERROR, format=config.log_format, stream=sys.stdout)


def configure_logging(level=None):
    """(Re)attach a single stdout handler to the 'quibit' logger."""
    quibit_logger = logging.getLogger('quibit')
    quibit_logger.setLevel(level or config.log_level)

    for handler in list(quibit_logger.handlers):
        quibit_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(config.log_format))
    quibit_logger.addHandler(handler)
    quibit_logger.propagate = False
    return quibit_logger


configure_logging()

logger = logging.getLogger(__name__)
