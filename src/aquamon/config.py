from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .errors import ConfigError

ROTATION_MODES = {"unbounded", "size_bounded"}
PARITY_CODES = {"N", "E", "O", "M", "S"}


@dataclass
class SerialSettings:
    port: str = "/dev/ttyUSB0"
    baudrate: int = 9600
    bytesize: int = 8
    parity: str = "N"
    stopbits: float = 1
    timeout: float = 1.0
    address: int = 0x01


@dataclass
class AcquisitionSettings:
    read_interval_sec: float = 2.0
    initial_settle_sec: float = 2.0
    switch_settle_sec: float = 0.8
    alternate_formats: bool = True
    initial_format: str = "ph"
    max_cycles: int = 10000  # 0 = until stopped
    validate_ph_range: bool = True
    window_size: int = 60


@dataclass
class ReportSettings:
    interval_sec: float = 60.0


@dataclass
class LogSettings:
    path: Path = Path("data.csv")
    header: bool = False
    rotation: str = "size_bounded"
    max_bytes: int = 45 * 1024 * 1024 * 1024
    eviction_lines: int = 604800


@dataclass
class BroadcastSettings:
    enabled: bool = True
    host: str = "192.168.1.28"
    port: int = 4210
    banner_enabled: bool = True
    banner_text: str = "IPAL DAN TPS LIMBAH B3 PJT I MOJOKERTO"
    banner_initial_delay_sec: float = 30.0
    banner_interval_sec: float = 60.0


@dataclass
class MonitorConfig:
    serial: SerialSettings = field(default_factory=SerialSettings)
    acquisition: AcquisitionSettings = field(default_factory=AcquisitionSettings)
    report: ReportSettings = field(default_factory=ReportSettings)
    log: LogSettings = field(default_factory=LogSettings)
    broadcast: BroadcastSettings = field(default_factory=BroadcastSettings)

    def validate(self) -> "MonitorConfig":
        if not 1 <= self.serial.address <= 247:
            raise ConfigError(f"serial.address must be within 1..247, got {self.serial.address}")
        if self.serial.parity.upper() not in PARITY_CODES:
            raise ConfigError(f"Unsupported serial.parity '{self.serial.parity}'")
        if self.serial.timeout <= 0:
            raise ConfigError("serial.timeout must be positive")
        acq = self.acquisition
        if acq.initial_format.lower() not in {"ph", "orp"}:
            raise ConfigError(f"Unsupported acquisition.initial_format '{acq.initial_format}'")
        if acq.window_size < 1:
            raise ConfigError("acquisition.window_size must be at least 1")
        if acq.max_cycles < 0:
            raise ConfigError("acquisition.max_cycles may not be negative")
        for name in ("read_interval_sec", "initial_settle_sec", "switch_settle_sec"):
            if getattr(acq, name) < 0:
                raise ConfigError(f"acquisition.{name} may not be negative")
        if self.report.interval_sec <= 0:
            raise ConfigError("report.interval_sec must be positive")
        if self.log.rotation not in ROTATION_MODES:
            raise ConfigError(
                f"Unsupported log.rotation '{self.log.rotation}', expected one of {sorted(ROTATION_MODES)}"
            )
        if self.log.rotation == "size_bounded" and (self.log.max_bytes <= 0 or self.log.eviction_lines <= 0):
            raise ConfigError("size_bounded rotation requires positive log.max_bytes and log.eviction_lines")
        if not 1 <= self.broadcast.port <= 65535:
            raise ConfigError(f"broadcast.port out of range: {self.broadcast.port}")
        if self.broadcast.banner_interval_sec <= 0 or self.broadcast.banner_initial_delay_sec < 0:
            raise ConfigError("broadcast banner delays must be non-negative (interval positive)")
        return self


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must hold a JSON object at the top level")
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> MonitorConfig:
    """
    Build a monitor configuration from an optional JSON file plus CLI-style overrides.

    Overrides are dotted `key=value` pairs, e.g.:
        ["serial.port=/dev/ttyUSB1", "acquisition.max_cycles=0"]
    Unknown sections or keys are rejected rather than silently ignored.
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)

    unknown = set(merged) - {"serial", "acquisition", "report", "log", "broadcast"}
    if unknown:
        raise ConfigError(f"Unknown config sections: {sorted(unknown)}")

    serial = _section(SerialSettings, merged.get("serial"))
    acquisition = _section(AcquisitionSettings, merged.get("acquisition"))
    report = _section(ReportSettings, merged.get("report"))
    log = _section(LogSettings, merged.get("log"))
    broadcast = _section(BroadcastSettings, merged.get("broadcast"))
    try:
        cfg = MonitorConfig(
            serial=SerialSettings(
                port=str(serial.port),
                baudrate=int(serial.baudrate),
                bytesize=int(serial.bytesize),
                parity=str(serial.parity).upper(),
                stopbits=float(serial.stopbits),
                timeout=float(serial.timeout),
                address=_as_int(serial.address),
            ),
            acquisition=AcquisitionSettings(
                read_interval_sec=float(acquisition.read_interval_sec),
                initial_settle_sec=float(acquisition.initial_settle_sec),
                switch_settle_sec=float(acquisition.switch_settle_sec),
                alternate_formats=_as_bool(acquisition.alternate_formats, "acquisition.alternate_formats"),
                initial_format=str(acquisition.initial_format).lower(),
                max_cycles=int(acquisition.max_cycles),
                validate_ph_range=_as_bool(acquisition.validate_ph_range, "acquisition.validate_ph_range"),
                window_size=int(acquisition.window_size),
            ),
            report=ReportSettings(interval_sec=float(report.interval_sec)),
            log=LogSettings(
                path=Path(log.path),
                header=_as_bool(log.header, "log.header"),
                rotation=str(log.rotation).lower(),
                max_bytes=int(log.max_bytes),
                eviction_lines=int(log.eviction_lines),
            ),
            broadcast=BroadcastSettings(
                enabled=_as_bool(broadcast.enabled, "broadcast.enabled"),
                host=str(broadcast.host),
                port=int(broadcast.port),
                banner_enabled=_as_bool(broadcast.banner_enabled, "broadcast.banner_enabled"),
                banner_text=str(broadcast.banner_text),
                banner_initial_delay_sec=float(broadcast.banner_initial_delay_sec),
                banner_interval_sec=float(broadcast.banner_interval_sec),
            ),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc
    return cfg.validate()


def _section(cls: type, data: Optional[Dict[str, Any]]) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Config section for {cls.__name__} must be an object")
    try:
        return cls(**data)
    except TypeError as exc:
        raise ConfigError(f"Invalid key in config section: {exc}") from exc


def _as_int(value: Any) -> int:
    # Device addresses are commonly written as "0x01" in JSON files.
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


_BOOL_WORDS = {"true": True, "yes": True, "on": True, "false": False, "no": False, "off": False}


def _as_bool(value: Any, name: str) -> bool:
    """Accept JSON booleans, 0/1 and the usual on/off words; anything else is an error."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _BOOL_WORDS:
        return _BOOL_WORDS[value.strip().lower()]
    raise ConfigError(f"{name} must be true or false, got {value!r}")


def _parse_override(item: str) -> tuple[str, Any]:
    key, sep, raw_value = item.partition("=")
    if not sep:
        raise ConfigError(f"Override '{item}' must use key=value syntax")
    key = key.strip()
    if not key or "" in key.split("."):
        raise ConfigError(f"Override key '{key}' is not a dotted section.field name")
    return key, _coerce_value(raw_value.strip())


def _coerce_value(raw: str) -> Any:
    """
    Best-effort typing of a ``--set`` value: booleans, numbers and JSON
    containers are converted, everything else stays a string. Field-level
    conversion in :func:`load_config` has the final say.
    """
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        if lowered.startswith("0x"):
            return int(raw, 16)
        if "." in raw or "e" in lowered:
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw[:1] in ("[", "{"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Banner text such as "[ALERT] low pH" is a plain string.
            return raw
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
