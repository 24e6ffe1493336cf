#!/usr/bin/env python3
"""netcup SCP exporter: Prometheus metrics for netcup's ServerControlPanel.

Usage:
    python web.py --refresh-token TOKEN                 # REST API, listen on :9757
    python web.py --legacy --login-name N --password P  # legacy SOAP API
    python web.py --tls-config web-config.yml           # serve over TLS
"""

from __future__ import annotations

import argparse
import html
import json
import logging
import os
import ssl
import sys
from dataclasses import dataclass
from pathlib import Path

import uvicorn
import yaml
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, Response
from prometheus_client import CollectorRegistry, Info, PlatformCollector, ProcessCollector
from prometheus_client.exposition import choose_encoder

from collectors import BaseCollector, LegacyScpCollector, ScpCollector
from scpclient import LegacyScpClient, RefreshTokenAuth, ScpClient

__version__ = "1.0.0"

NAME = "Netcup SCP Exporter"
DESCRIPTION = "Exporting Metrics from Netcup's ServerControlPanel"

logger = logging.getLogger("scp_exporter")


class ConfigError(Exception):
    """Invalid or incomplete startup configuration."""


# ---------------------------------------------------------------------------
# Config loader
# ---------------------------------------------------------------------------

@dataclass
class ExporterConfig:
    refresh_token: str = ""
    listen_address: str = ":9757"
    tls_config: str = ""
    legacy: bool = False
    login_name: str = ""
    password: str = ""
    log_level: str = "info"
    log_format: str = "logfmt"
    telemetry_path: str = "/metrics"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def load_config(argv: list[str] | None = None) -> ExporterConfig:
    """Parse command-line flags; every flag falls back to an SCP_* environment variable."""
    env = os.environ.get
    parser = argparse.ArgumentParser(description=DESCRIPTION)
    parser.add_argument("--refresh-token", default=env("SCP_REFRESHTOKEN", ""), help="API Refresh Token")
    parser.add_argument(
        "--listen-address",
        default=env("SCP_LISTENADDRESS", ":9757"),
        help="The address to listen on for HTTP requests (default: :9757)",
    )
    parser.add_argument("--tls-config", default=env("SCP_TLSCONFIG", ""), help="Path to TLS config file")
    parser.add_argument(
        "--legacy",
        action="store_true",
        default=_env_flag("SCP_LEGACY"),
        help="Use the legacy SOAP API with login name and password",
    )
    parser.add_argument("--login-name", default=env("SCP_LOGINNAME", ""), help="SOAP API login name (legacy)")
    parser.add_argument("--password", default=env("SCP_PASSWORD", ""), help="SOAP API password (legacy)")
    parser.add_argument(
        "--log.level",
        dest="log_level",
        choices=["debug", "info", "warn", "error"],
        default=env("SCP_LOG_LEVEL", "info"),
        help="Only log messages with the given severity or above",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        choices=["logfmt", "json"],
        default=env("SCP_LOG_FORMAT", "logfmt"),
        help="Output format of log messages",
    )
    parser.add_argument(
        "--web.telemetry-path",
        dest="telemetry_path",
        default=env("SCP_TELEMETRY_PATH", "/metrics"),
        help="Path under which to expose metrics",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    return ExporterConfig(
        refresh_token=args.refresh_token,
        listen_address=args.listen_address,
        tls_config=args.tls_config,
        legacy=args.legacy,
        login_name=args.login_name,
        password=args.password,
        log_level=args.log_level,
        log_format=args.log_format,
        telemetry_path=args.telemetry_path,
    )


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split "host:port" (host optional, IPv6 in brackets) into uvicorn's host and port."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"Invalid listen address: {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


_CLIENT_AUTH = {
    "NoClientCert": ssl.CERT_NONE,
    "RequestClientCert": ssl.CERT_OPTIONAL,
    "VerifyClientCertIfGiven": ssl.CERT_OPTIONAL,
    "RequireAndVerifyClientCert": ssl.CERT_REQUIRED,
}


def load_web_config(path: str | Path) -> dict:
    """Read an exporter-toolkit style web config and return uvicorn SSL options.

    Relative certificate paths are resolved against the config file's directory.
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"TLS config file not found: {path}")

    with open(p) as f:
        data = yaml.safe_load(f) or {}

    tls = data.get("tls_server_config")
    if not tls:
        return {}

    def resolve(name: str) -> str | None:
        value = tls.get(name)
        if not value:
            return None
        return str(p.parent / value) if not Path(value).is_absolute() else value

    cert_file, key_file = resolve("cert_file"), resolve("key_file")
    if not cert_file or not key_file:
        raise ConfigError("tls_server_config requires cert_file and key_file")

    options = {"ssl_certfile": cert_file, "ssl_keyfile": key_file}
    ca_file = resolve("client_ca_file")
    if ca_file:
        options["ssl_ca_certs"] = ca_file
    auth_type = tls.get("client_auth_type", "NoClientCert")
    if auth_type not in _CLIENT_AUTH:
        raise ConfigError(f"Invalid client_auth_type: {auth_type}")
    options["ssl_cert_reqs"] = _CLIENT_AUTH[auth_type]
    return options


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


def _record_fields(formatter: logging.Formatter, record: logging.LogRecord) -> dict:
    fields = {
        "ts": formatter.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
        "level": record.levelname.lower(),
        "logger": record.name,
        "msg": record.getMessage(),
    }
    for key, value in vars(record).items():
        if key not in _RECORD_ATTRS and not key.startswith("_"):
            fields[key] = value
    if record.exc_info:
        fields["err"] = formatter.formatException(record.exc_info)
    return fields


def _logfmt_value(value: object) -> str:
    s = "" if value is None else str(value)
    if s == "" or any(c in s for c in ' ="\n'):
        return '"' + s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'
    return s


class LogfmtFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(self, record)
        return " ".join(f"{key}={_logfmt_value(value)}" for key, value in fields.items())


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(_record_fields(self, record), default=str)


def configure_logging(level: str = "info", fmt: str = "logfmt") -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else LogfmtFormatter())
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(_LEVELS.get(level, logging.INFO))


# ---------------------------------------------------------------------------
# Collector and registry
# ---------------------------------------------------------------------------

def build_collector(cfg: ExporterConfig) -> BaseCollector:
    if cfg.legacy:
        if not cfg.login_name or not cfg.password:
            raise ConfigError("Login name and password are required in legacy mode")
        return LegacyScpCollector(LegacyScpClient(cfg.login_name, cfg.password))

    if not cfg.refresh_token:
        raise ConfigError("Refresh token is required")
    return ScpCollector(ScpClient(auth=RefreshTokenAuth(cfg.refresh_token)))


def build_registry(collector: BaseCollector) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(collector)
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    Info("scp_build", "Build information of the exporter", registry=registry).info({"version": __version__})
    return registry


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

def landing_page(metrics_path: str) -> str:
    path = html.escape(metrics_path, quote=True)
    return f"""<!DOCTYPE html>
<html>
<head><title>{NAME}</title></head>
<body>
<h1>{NAME}</h1>
<p>{html.escape(DESCRIPTION)}</p>
<p>Version: {__version__}</p>
<ul><li><a href="{path}">Metrics</a></li></ul>
</body>
</html>
"""


def create_app(registry: CollectorRegistry, metrics_path: str = "/metrics") -> FastAPI:
    """Build the exporter app around an already populated registry."""
    app = FastAPI(title=NAME, version=__version__, docs_url=None, redoc_url=None, openapi_url=None)
    page = landing_page(metrics_path)

    # Sync handler: runs in the threadpool so a slow scrape never blocks the loop.
    @app.get(metrics_path)
    def metrics(request: Request) -> Response:
        encoder, content_type = choose_encoder(request.headers.get("accept", ""))
        return Response(content=encoder(registry), media_type=content_type)

    @app.get("/", response_class=HTMLResponse)
    def index() -> str:
        return page

    return app


# ---------------------------------------------------------------------------
# CLI entrypoint
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    cfg = load_config(argv)
    configure_logging(cfg.log_level, cfg.log_format)
    logger.debug("Starting SCP Exporter version %s", __version__)

    try:
        host, port = parse_listen_address(cfg.listen_address)
        ssl_options = load_web_config(cfg.tls_config) if cfg.tls_config else {}
        collector = build_collector(cfg)
    except (ConfigError, OSError, yaml.YAMLError) as e:
        logger.error("%s", e)
        sys.exit(1)

    app = create_app(build_registry(collector), cfg.telemetry_path)

    logger.info("Listening on %s", cfg.listen_address, extra={"tls": bool(ssl_options)})
    try:
        uvicorn.run(app, host=host, port=port, log_config=None, **ssl_options)
    except OSError as e:
        logger.error("Run into bad state: %s", e)
        sys.exit(1)
    finally:
        collector.close()


if __name__ == "__main__":
    main()
