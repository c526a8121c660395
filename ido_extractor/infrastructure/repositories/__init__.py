from .auth_repository import AdminRepository, AuthRepository
from .base import BaseRepository, OwnerScopeRequiredError
from .configuration_repository import ConfigurationRepository
from .execution_repository import ExecutionHistoryRepository
from .export_data_repository import ExportDataRepository
from .global_config_repository import GlobalConfigRepository
from .job_repository import JobRepository
from .settings_repository import SettingsRepository

__all__ = [
    "AdminRepository",
    "AuthRepository",
    "BaseRepository",
    "ConfigurationRepository",
    "ExecutionHistoryRepository",
    "ExportDataRepository",
    "GlobalConfigRepository",
    "JobRepository",
    "OwnerScopeRequiredError",
    "SettingsRepository",
]
