import os

# Warn when a scope name shadows an existing callable on the model
warn_on_name_collision: bool = os.getenv('SCOPES_WARN_ON_NAME_COLLISION', 'true').lower() in ('1', 'true', 'yes', 'on')

# How to surface deprecated scope definitions: warn, log, raise or silence
deprecation_behavior: str = os.getenv('SCOPES_DEPRECATION_BEHAVIOR', 'warn')

# Logger namespace used by the scope layer
log_channel: str = 'relation_scopes'
