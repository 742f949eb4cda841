import os
from typing import Dict, Any

# Default logging channel
default = os.getenv('LOG_CHANNEL', 'stderr')

channels: Dict[str, Dict[str, Any]] = {
    'stderr': {
        'driver': 'stderr',
        'level': os.getenv('LOG_LEVEL', 'warning'),
        'formatter': 'laravel',
    },

    'single': {
        'driver': 'single',
        'path': os.getenv('LOG_PATH', 'storage/logs/relation_scopes.log'),
        'level': os.getenv('LOG_LEVEL', 'debug'),
    },

    'json': {
        'driver': 'stderr',
        'level': os.getenv('LOG_LEVEL', 'debug'),
        'formatter': 'json',
    },

    'null': {
        'driver': 'null',
    },
}
