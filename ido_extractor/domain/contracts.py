from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    config: str
    timeout: int = 30
    retry_count: int = 3
    retry_delay: int = 1


@dataclass(frozen=True)
class UserCredentials:
    username: str
    password: str


@dataclass(frozen=True)
class StoredCredentials:
    api: ApiConfig
    user: UserCredentials
    logging_level: str = "INFO"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "api": {
                "base_url": self.api.base_url,
                "config": self.api.config,
                "timeout": self.api.timeout,
                "retry_count": self.api.retry_count,
                "retry_delay": self.api.retry_delay,
            },
            "user": {
                "username": self.user.username,
                "password": self.user.password,
            },
            "logging": {"level": self.logging_level},
        }


@dataclass(frozen=True)
class EncryptedPayload:
    encrypted: str
    salt: str
    iv: str


@dataclass(frozen=True)
class FilterableField:
    name: str
    prompt: str
    type: str = "string"
    operator: str = "="
    input_type: str = "text"
    cache_duration: int | None = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "prompt": self.prompt,
            "type": self.type,
            "operator": self.operator,
            "input_type": self.input_type,
        }
        if self.cache_duration is not None:
            payload["cache_duration"] = self.cache_duration
        return payload


@dataclass(frozen=True)
class Job:
    job_name: str
    ido_name: str
    properties: str
    record_cap: int
    output_format: str = "csv"
    filterable_fields: List[FilterableField] = field(default_factory=list)
    is_template: bool = False
    is_shared: bool = False
    id: int | None = None
    user_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_name": self.job_name,
            "ido_name": self.ido_name,
            "query_params": {"properties": self.properties, "recordCap": self.record_cap},
            "output_format": self.output_format,
            "filterable_fields": [item.to_payload() for item in self.filterable_fields],
            "is_template": self.is_template,
            "is_shared": self.is_shared,
            "owned": self.user_id is not None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class ColumnPatch:
    name: str
    value: str
    mode: str = "add"


@dataclass(frozen=True)
class ExportResult:
    file_path: str
    file_name: str
    record_count: int
    mime_type: str
    size_bytes: int


@dataclass(frozen=True)
class JobRunInput:
    job_name: str
    filter_values: Dict[str, str] = field(default_factory=dict)
    column_patches: List[ColumnPatch] = field(default_factory=list)
    output_format: str | None = None
    output_dir: str | None = None
    store_snapshot: bool = False


@dataclass(frozen=True)
class AuthLoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class AuthRegisterInput:
    email: str
    password: str
    full_name: str | None = None
    company: str | None = None


@dataclass(frozen=True)
class AuthUser:
    id: int
    email: str
    display_name: str
    role: str = "user"
