from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Annotated, Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter, model_validator

from .settings import ControlSelectionSettings


class BaseProfile(BaseModel):
    """Settings shared by all backends: where the input tables live and how to sample."""

    model_config = ConfigDict(extra="forbid")  # typo protection in YAML!

    database_schema: Optional[str] = None
    nesting_cohort_table: str = "nesting_cohort"
    case_table: str = "cases"
    visit_table: Optional[str] = "visits"

    output: Path = Field(default=Path("case_control.parquet"))
    seed: Optional[int] = None
    max_probe_iterations: int = Field(default=1000, ge=0)
    settings: ControlSelectionSettings = Field(default_factory=ControlSelectionSettings)

    @model_validator(mode="after")
    def check_visit_table(self) -> "BaseProfile":
        if self.settings.match_on_visit_date and not self.visit_table:
            raise ValueError("match_on_visit_date requires visit_table")
        return self

    def get_ibis_connection_params(self) -> dict[str, Any]:
        """Subclasses must implement this to return ONLY what ibis.connect needs."""
        raise NotImplementedError


class DuckDBProfile(BaseProfile):
    backend: Literal["duckdb"]

    database: str = ":memory:"
    read_only: bool = True

    def get_ibis_connection_params(self) -> dict[str, Any]:
        return {"database": self.database, "read_only": self.read_only}


class PostgresProfile(BaseProfile):
    backend: Literal["postgres"]

    host: str = "localhost"
    port: int = 5432
    user: str
    password: SecretStr
    database: str

    @model_validator(mode="after")
    def check_password(self) -> "PostgresProfile":
        value = self.password.get_secret_value()
        if value.startswith("${"):
            raise ValueError(
                f"The password appears to be an unresolved variable: '{value}'. "
                "Ensure the password is set to a valid environment variable."
            )
        return self

    def get_ibis_connection_params(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password.get_secret_value(),
            "database": self.database,
        }


AnyProfile = Annotated[DuckDBProfile | PostgresProfile, Field(discriminator="backend")]


class ProfilesFile(BaseModel):
    """Validates the entire profiles.yaml file structure."""

    model_config = ConfigDict(extra="ignore")
    default_profile: str | None = None
    profiles: dict[str, AnyProfile]


def load_yaml_with_env(config_path: str | Path) -> dict[str, Any]:
    """
    Loads YAML, substitutes ${VAR} references from the environment, and
    normalises a flat file (profiles at top level) into {"profiles": ...}.
    """
    path = Path(config_path)
    if not path.exists():
        return {"profiles": {}}

    try:
        raw_content = path.read_text()
    except OSError as e:
        raise RuntimeError(f"Error reading config: {e}") from e

    def sub(match: re.Match[str]) -> str:
        val = os.environ.get(match.group(1))
        return val if val is not None else match.group(0)

    expanded_content = re.sub(r"\$\{([^}]+)\}", sub, raw_content)

    try:
        data = yaml.safe_load(expanded_content)
    except yaml.YAMLError as e:
        raise RuntimeError(f"Invalid YAML syntax: {e}") from e

    if not isinstance(data, dict):
        return {"profiles": {}}
    if "profiles" in data:
        return data

    default_profile = data.pop("default_profile", None)
    return {"default_profile": default_profile, "profiles": data}


def resolve_profile(
    config_path: str | Path,
    profile: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> AnyProfile:
    """
    Pick a profile from the config file and apply overrides on top of it.

    Overrides use profile field names; a nested "settings" mapping is merged
    into the profile's selection settings rather than replacing them.
    """
    profiles_obj = ProfilesFile(**load_yaml_with_env(config_path))
    profile_name = profile or profiles_obj.default_profile
    if profile_name:
        if profile_name not in profiles_obj.profiles:
            raise KeyError(f"Profile '{profile_name}' not found in {config_path}")
        data = profiles_obj.profiles[profile_name].model_dump(mode="python")
    else:
        data = {"backend": "duckdb"}

    overrides = dict(overrides or {})
    settings_overrides = overrides.pop("settings", None) or {}
    merged = {**data, **{k: v for k, v in overrides.items() if v is not None}}
    if settings_overrides:
        merged["settings"] = {**(merged.get("settings") or {}), **settings_overrides}

    return TypeAdapter(AnyProfile).validate_python(merged)
