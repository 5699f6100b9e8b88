#!/usr/bin/env python3
"""
Default paths and names for a Vaultwarden deployment.

This is the SINGLE SOURCE OF TRUTH for filesystem locations, unit names and
tunables used by vwsetup. Modules read them through ``Settings`` (which may
override them from a TOML file); nothing else hardcodes these strings.
"""

# ============================================================================
# Deployment layout
# ============================================================================

INSTALL_DIR = '/opt/vaultwarden'
DATA_DIR = '/var/lib/vaultwarden'
ENV_FILE_NAME = '.env'
LOG_FILE = '/var/log/vaultwarden-setup.log'
ADMIN_KEY_FILE = '/root/vaultwarden-admin-key.txt'

SYSTEMD_UNIT_FILE = '/etc/systemd/system/vaultwarden.service'
NGINX_SITE_FILE = '/etc/nginx/sites-available/vaultwarden'
NGINX_ENABLED_DIR = '/etc/nginx/sites-enabled'

ALIAS_FILE = '/root/.bashrc'
ALIAS_MARKER_START = '# >>> VAULTWARDEN ALIASES START >>>'
ALIAS_MARKER_END = '# <<< VAULTWARDEN ALIASES END <<<'

BACKUP_SCRIPT = '/usr/local/bin/vaultwarden-backup.sh'
BACKUP_DIR = '/root/vaultwarden-backups'
BACKUP_PREFIX = 'vaultwarden'
BACKUP_RETENTION_DAYS = 7
BACKUP_SCHEDULE = '0 2 * * *'

MANUAL_CERT_DIR = '/etc/ssl/vaultwarden'
LETSENCRYPT_LIVE_DIR = '/etc/letsencrypt/live'

MOTD_DIR = '/etc/update-motd.d'
MOTD_SCRIPT_NAME = '99-vaultwarden'

# ============================================================================
# Service / container
# ============================================================================

SERVICE_NAME = 'vaultwarden'
CONTAINER_NAME = 'vaultwarden'
IMAGE_REPOSITORY = 'vaultwarden/server'
APP_LOCAL_PORT = 8000
CONTAINER_DATA_DIR = '/data'
SETTLE_SECONDS = 5
RECOVERY_PAUSE_SECONDS = 3

DEFAULT_HTTPS_PORT = 443
PLAINTEXT_PORT = 80
SSH_PORT = 22
DEFAULT_SMTP_PORT = 587

# ============================================================================
# Operator wait loop (manual wildcard flow)
# ============================================================================

WAIT_POLL_INTERVAL = 0.0
WAIT_REPROMPT = 'Press ENTER to re-check or type a different path: '

# ============================================================================
# Network preflight
# ============================================================================

CONNECTIVITY_HOST = '8.8.8.8'
CONNECTIVITY_PORT = 53
DOCKER_INSTALL_SCRIPT_URL = 'https://get.docker.com'
