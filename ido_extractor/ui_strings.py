from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "IDO Data Extractor",
    "job": "Job",
    "ido": "IDO collection",
    "configuration": "API configuration",
    "execution": "Execution",
}


EXECUTION_STATUSES: List[Dict[str, str]] = [
    {
        "key": "running",
        "label": "Running",
        "description": "The job is fetching records from the IDO API.",
    },
    {
        "key": "success",
        "label": "Success",
        "description": "Records were fetched and exported.",
    },
    {
        "key": "error",
        "label": "Error",
        "description": "The run stopped before the export finished.",
    },
]


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "configuration_saved": "Configuration saved. Log in with your username and the encryption password you just set.",
        "configuration_deleted": "Configuration deleted.",
        "connected": "Successfully connected to the IDO system.",
        "disconnected": "IDO session ended.",
        "connection_ok": "IDO connection is healthy.",
        "job_saved": "Job saved.",
        "job_deleted": "Job deleted.",
        "export_complete": "Records exported successfully.",
        "no_records_found": "No records found matching your filter criteria.",
        "setting_saved": "Setting saved.",
        "global_config_saved": "Global configuration saved.",
        "global_config_deleted": "Global configuration deleted.",
        "admin_added": "Admin user added.",
        "admin_removed": "Admin user removed.",
        "user_status_updated": "User status updated.",
        "cache_cleared": "Cached filter values cleared.",
    },
    "error": {
        "account_inactive": "This account is disabled. Contact an administrator.",
        "action_invalid": "Invalid action for this operation.",
        "admin_not_found": "Admin user not found.",
        "auth_invalid_credentials": "Invalid email or password.",
        "auth_missing_credentials": "Email and password are required.",
        "auth_required": "Authentication required.",
        "configuration_not_found": "Configuration not found.",
        "configuration_username_taken": "A configuration with this username already exists.",
        "email_already_registered": "Email already registered. Use another email or log in.",
        "encryption_password_required": "An encryption password is required.",
        "export_not_found": "Export not found.",
        "field_required": "A required field is missing.",
        "global_config_not_found": "Global configuration key not found.",
        "ido_auth_failed": "The IDO API rejected the stored credentials.",
        "ido_connection_failed": "Cannot reach the IDO API. Check the server URL, the network and the firewall settings.",
        "ido_not_connected": "Connect to the IDO system before running jobs.",
        "ido_request_rejected": "The IDO API rejected the request. Review the job definition and filters.",
        "ido_unavailable": "The IDO API is unavailable right now. Try again in a moment.",
        "invalid_encryption_password": "Invalid encryption password. Enter the password you used when saving the configuration.",
        "invalid_filter_value": "A filter value is invalid.",
        "invalid_job_definition": "The job definition is invalid.",
        "invalid_payload": "The request body is invalid.",
        "job_not_found": "Job not found.",
        "maintenance_mode": "The application is under maintenance. Try again later.",
        "no_data_to_export": "There is no data to export.",
        "permission_denied": "You do not have permission to perform this action.",
        "rate_limit_exceeded": "Too many requests. Try again in a moment.",
        "registration_disabled": "New user registration is disabled.",
        "unknown_column": "The column to modify does not exist in the result.",
        "unsupported_format": "Unsupported export format.",
        "user_not_found": "User not found.",
        "username_mismatch": "Username does not match the configured credentials.",
        "unexpected_error": "The operation could not be completed. Try again in a moment.",
    },
}


def execution_status_keys() -> List[str]:
    return [item["key"] for item in EXECUTION_STATUSES]


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)
