"""Export request schema and manifest loading.

The UI sends camelCase JSON; Python callers may use snake_case. Both
are accepted. Models are frozen: a request does not change while it is
being exported.

Request manifest (YAML or JSON), as used by the CLI:
  sourcePath: "/matches/2024-05-01.mp4"
  exportMode: perRow
  overlay:
    enabled: true
    showActionName: true
  clips:
    - id: a
      actionName: Scrum
      startTime: 12.0
      endTime: 20.5
"""

import json
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidRequestError


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class Label(_Schema):
    group: str = ""
    name: str


class ClipSpec(_Schema):
    id: str
    action_name: str
    start_time: float
    end_time: float
    freeze_at: float | None = None
    freeze_duration: float | None = None
    labels: list[Label] = Field(default_factory=list)
    memo: str | None = None
    action_index: int | None = None
    annotation_png_primary: str | None = None
    annotation_png_secondary: str | None = None

    @model_validator(mode="after")
    def _check_range(self) -> "ClipSpec":
        if self.end_time < self.start_time:
            raise ValueError(
                f"clip {self.id}: endTime ({self.end_time}) is before "
                f"startTime ({self.start_time})"
            )
        return self


class OverlayConfig(_Schema):
    enabled: bool = False
    show_action_name: bool = True
    show_action_index: bool = True
    show_labels: bool = True
    show_memo: bool = True
    text_template: str = ""


class ExportRequest(_Schema):
    source_path: str | None = None
    source_path2: str | None = None
    mode: Literal["single", "dual"] = "single"
    export_mode: Literal["single", "perInstance", "perRow"] = "single"
    angle_option: Literal["all", "angle1", "angle2"] = "all"
    output_dir: str | None = None
    output_file_name: str | None = None
    clips: list[ClipSpec] = Field(default_factory=list)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)


class ExportResult(BaseModel):
    success: bool
    error: str | None = None

    def to_payload(self) -> dict:
        """Wire form: ``{"success": ...}`` plus ``error`` only on failure."""
        return self.model_dump(exclude_none=True)


# ── Parsing ───────────────────────────────────────────────────────


def _describe(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def parse_request(payload: dict | ExportRequest) -> ExportRequest:
    """Validate a raw payload into an ExportRequest.

    Raises:
        InvalidRequestError: The payload does not match the schema.
    """
    if isinstance(payload, ExportRequest):
        return payload
    try:
        return ExportRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid export request: {_describe(e)}") from e


def load_request(manifest_path: str | Path) -> ExportRequest:
    """Load a request manifest from a .json, .yaml or .yml file.

    Relative source paths are resolved against the manifest's directory.

    Raises:
        InvalidRequestError: Unreadable document or schema mismatch.
        FileNotFoundError: Missing manifest file.
    """
    manifest_path = Path(manifest_path)
    with open(manifest_path, encoding="utf-8") as f:
        try:
            if manifest_path.suffix.lower() == ".json":
                raw = json.load(f)
            else:
                raw = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise InvalidRequestError(f"Cannot parse {manifest_path}: {e}") from e

    if not isinstance(raw, dict):
        raise InvalidRequestError(f"{manifest_path}: request must be a mapping")

    base = manifest_path.parent
    for key in ("sourcePath", "sourcePath2", "source_path", "source_path2"):
        value = raw.get(key)
        if isinstance(value, str) and value and not Path(value).is_absolute():
            raw[key] = str(base / value)

    return parse_request(raw)
