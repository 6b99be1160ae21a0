import logging
import logging.config
import os

LOG_LEVEL = os.getenv('TXPIPE_LOG_LEVEL', 'INFO').upper()

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s %(levelname)-6s %(name)s:%(lineno)d %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
            'stream': 'ext://sys.stdout',
        },
    },
    'loggers': {
        'txpipe': {
            'level': LOG_LEVEL,
            'handlers': ['console'],
            'propagate': False,
        },
        # Request lines from the RPC transport are noisy
        'httpx': {
            'level': 'WARNING',
            'handlers': ['console'],
            'propagate': False,
        },
    },
    'root': {
        'level': 'WARNING',
        'handlers': ['console'],
    },
}


def setup_logging(level=None):
    """Apply the logging configuration."""
    config = dict(LOGGING_CONFIG)
    if level is not None:
        config['loggers'] = dict(config['loggers'])
        config['loggers']['txpipe'] = dict(config['loggers']['txpipe'], level=level.upper())
    logging.config.dictConfig(config)
