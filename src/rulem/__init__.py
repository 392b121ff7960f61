"""rulem: manage AI-assistant rule files across projects from central repositories."""

__version__ = "0.1.0"
__author__ = "rulem Contributors"
__description__ = "Manage AI-assistant rule files from central repositories"

from .config import Config, load_config, save_config
from .models import PreparedRepository, RepositoryEntry, RepositoryType, SyncStatus
from .repository import prepare_all_repositories, sync_all_repositories

__all__ = [
    "Config",
    "PreparedRepository",
    "RepositoryEntry",
    "RepositoryType",
    "SyncStatus",
    "load_config",
    "prepare_all_repositories",
    "save_config",
    "sync_all_repositories",
]
