import logging
import sys

from .config import settings

LOGGER_NAMESPACE = 'kommo'

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.dev_mode else getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
)
# kommo.api already logs every request along with the rate limit budget
logging.getLogger('httpx').setLevel(logging.WARNING)


def get_logger(name: str = None) -> logging.Logger:
    """A logger under the kommo namespace, eg get_logger('api') gives 'kommo.api'"""
    if not name or name == LOGGER_NAMESPACE:
        return logging.getLogger(LOGGER_NAMESPACE)
    if not name.startswith(f'{LOGGER_NAMESPACE}.'):
        name = f'{LOGGER_NAMESPACE}.{name}'
    return logging.getLogger(name)
