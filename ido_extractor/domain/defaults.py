from __future__ import annotations

from typing import Any, Dict, List


DEFAULT_JOB_NAME = "Staging_Area_Label"

DEFAULT_JOB: Dict[str, Any] = {
    "job_name": DEFAULT_JOB_NAME,
    "ido_name": "OPSIT_RS_QCInspIps",
    "query_params": {
        "properties": "Name,Lot,rcvd_qty,CreateDate,Item,TransDate,u_m,itmDescription,Job,overview",
        "recordCap": 100,
    },
    "output_format": "csv",
    "filterable_fields": [
        {
            "name": "Lot",
            "prompt": "Select Lot",
            "type": "string",
            "operator": "=",
            "input_type": "dropdown",
            "cache_duration": 300,
        },
        {
            "name": "Item",
            "prompt": "Select Item code",
            "type": "string",
            "operator": "=",
            "input_type": "dropdown",
            "cache_duration": 300,
        },
        {
            "name": "TransDate",
            "prompt": "Select Transaction Date",
            "type": "date",
            "operator": ">=",
            "input_type": "calendar",
        },
    ],
}


# (key, value, description, is_public)
DEFAULT_GLOBAL_CONFIG: List[tuple[str, Any, str, bool]] = [
    ("app_name", "IDO Data Extractor", "Application name", True),
    ("app_version", "1.0.0", "Application version", True),
    ("default_base_url", "", "Default IDO API base URL", False),
    ("default_config_name", "SL", "Default Mongoose configuration name", False),
    ("max_record_cap", 10000, "Maximum records a single job may fetch", True),
    ("supported_formats", ["csv", "xlsx"], "Export formats offered to users", True),
    ("maintenance_mode", False, "Block non-admin API access", True),
    ("user_registration_enabled", True, "Allow self-service registration", True),
    ("default_timeout", 30, "Default IDO API timeout in seconds", False),
    ("cache_duration", 300, "Default distinct value cache duration in seconds", False),
]


SUPPORTED_FORMATS = ("csv", "xlsx")
