from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from .topology.pool import DEFAULT_PARALLELISM, validate_parallelism
from .util.errors import ConfigError

# --------
# Defaults
# --------
AUTH_METHODS = {"auto", "cli", "environment", "managed_identity"}
ALLOWED_CONFIG_KEYS = {
    "outdir",
    "parallelism",
    "subscriptions",
    "diagram",
    "legend",
    "parquet",
    "progress",
    "json_logs",
    "log_level",
    "auth",
    "tenant_id",
    "color_seed",
}
BOOL_CONFIG_KEYS = {"diagram", "legend", "parquet", "progress", "json_logs"}
INT_CONFIG_KEYS = {"parallelism", "color_seed"}
PATH_CONFIG_KEYS = {"outdir"}
STR_CONFIG_KEYS = {"log_level", "auth", "tenant_id"}


@dataclass(frozen=True)
class RunConfig:
    # General
    outdir: Path
    diagram: bool = False
    legend: bool = True
    parquet: bool = False
    progress: bool = True
    json_logs: bool = False
    log_level: str = "INFO"

    # Scope / performance
    parallelism: int = DEFAULT_PARALLELISM
    subscriptions: Optional[List[str]] = None
    color_seed: Optional[int] = None

    # Auth
    auth: str = "auto"  # auto|cli|environment|managed_identity
    tenant_id: Optional[str] = None

    # Internal/derived
    collected_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except Exception as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_bool(name: str) -> Optional[bool]:
    raw = _env_str(name)
    if raw is None:
        return None
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer") from None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _split_list(value: Any, key: str) -> List[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return [v.strip() for v in value if v.strip()]
    raise ValueError(f"Config field '{key}' must be a list of strings or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key == "subscriptions":
            normalized[key] = _split_list(value, key)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ValueError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ValueError(f"Config field '{key}' must be a string")
            normalized[key] = value
    auth = normalized.get("auth")
    if auth is not None:
        auth = str(auth).lower()
        if auth not in AUTH_METHODS:
            raise ValueError(f"Config field 'auth' must be one of: {', '.join(sorted(AUTH_METHODS))}")
        normalized["auth"] = auth
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _timestamp_dir(base: Optional[Union[str, Path]]) -> Path:
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return Path(base or "out") / ts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="az-inv", description="Azure network topology inventory")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument(
            "--auth",
            default=None,
            choices=sorted(AUTH_METHODS),
            help="Auth method (default: auto)",
        )
        p.add_argument("--tenant", dest="tenant_id", default=None, help="Entra ID tenant id")

    p_run = subparsers.add_parser("run", help="Collect the network inventory")
    add_common(p_run)
    p_run.add_argument("--outdir", type=Path, default=None, help="Output base directory (out/TS)")
    p_run.add_argument(
        "--parallelism",
        "--throttle-limit",
        dest="parallelism",
        type=int,
        default=None,
        help=f"Max subscriptions processed concurrently, 1-20 (default {DEFAULT_PARALLELISM})",
    )
    p_run.add_argument(
        "--subscriptions",
        default=None,
        help="Comma-separated subscription names or ids to include (default: all enabled)",
    )
    p_run.add_argument(
        "--diagram",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write a draw.io topology diagram",
    )
    p_run.add_argument(
        "--legend",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Add a Legend page to the diagram (default on)",
    )
    p_run.add_argument(
        "--parquet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write Parquet (pyarrow)",
    )
    p_run.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress bar and summary table (default on)",
    )
    p_run.add_argument("--color-seed", type=int, default=None, help="Seed for per-subscription diagram colors")

    p_val = subparsers.add_parser("validate-auth", help="Validate authentication setup")
    add_common(p_val)

    p_ls = subparsers.add_parser("list-subscriptions", help="List subscriptions visible to the credential")
    add_common(p_ls)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of: run|validate-auth|list-subscriptions
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "outdir": None,
        "parallelism": DEFAULT_PARALLELISM,
        "subscriptions": None,
        "diagram": False,
        "legend": True,
        "parquet": False,
        "progress": True,
        "json_logs": False,
        "log_level": "INFO",
        "auth": "auto",
        "tenant_id": None,
        "color_seed": None,
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": _env_str("AZ_INV_OUTDIR"),
            "parallelism": _env_int("AZ_INV_PARALLELISM"),
            "subscriptions": _env_str("AZ_INV_SUBSCRIPTIONS"),
            "diagram": _env_bool("AZ_INV_DIAGRAM"),
            "legend": _env_bool("AZ_INV_LEGEND"),
            "parquet": _env_bool("AZ_INV_PARQUET"),
            "progress": _env_bool("AZ_INV_PROGRESS"),
            "json_logs": _env_bool("AZ_INV_JSON_LOGS"),
            "log_level": _env_str("AZ_INV_LOG_LEVEL"),
            "auth": _env_str("AZ_INV_AUTH"),
            "tenant_id": _env_str("AZURE_TENANT_ID"),
            "color_seed": _env_int("AZ_INV_COLOR_SEED"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": getattr(ns, "outdir", None),
            "parallelism": getattr(ns, "parallelism", None),
            "subscriptions": getattr(ns, "subscriptions", None),
            "diagram": getattr(ns, "diagram", None),
            "legend": getattr(ns, "legend", None),
            "parquet": getattr(ns, "parquet", None),
            "progress": getattr(ns, "progress", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "auth": getattr(ns, "auth", None),
            "tenant_id": getattr(ns, "tenant_id", None),
            "color_seed": getattr(ns, "color_seed", None),
        }
    )

    merged = {**base, **file_cfg, **env_cfg, **cli_cfg}

    outdir_raw = merged.get("outdir")
    outdir = _timestamp_dir(outdir_raw) if command == "run" else Path(outdir_raw) if outdir_raw else Path.cwd()

    subs_raw = merged.get("subscriptions")
    subscriptions = _split_list(subs_raw, "subscriptions") if subs_raw is not None else None

    auth = str(merged.get("auth") or "auto").lower()
    if auth not in AUTH_METHODS:
        raise ConfigError(f"Unsupported auth method: {auth}")

    parallelism = validate_parallelism(int(merged["parallelism"]))

    cfg = RunConfig(
        outdir=outdir,
        diagram=bool(merged["diagram"]),
        legend=bool(merged["legend"]),
        parquet=bool(merged["parquet"]),
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
        parallelism=parallelism,
        subscriptions=subscriptions or None,
        color_seed=merged.get("color_seed"),
        auth=auth,
        tenant_id=str(merged["tenant_id"]) if merged.get("tenant_id") else None,
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "outdir": str(cfg.outdir),
        "diagram": cfg.diagram,
        "legend": cfg.legend,
        "parquet": cfg.parquet,
        "progress": cfg.progress,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "parallelism": cfg.parallelism,
        "subscriptions": cfg.subscriptions,
        "color_seed": cfg.color_seed,
        "auth": cfg.auth,
        "tenant_id": cfg.tenant_id,
        "collected_at": cfg.collected_at,
    }
