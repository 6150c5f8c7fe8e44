"""
Command-line interface for proxysync.

Usage (examples):
  - Plan only (reads remote state, issues no writes):
      python -m proxysync.cli converge --intent ./web.yml --project p1 --token T --dry-run

  - Converge:
      python -m proxysync.cli converge --intent ./web.yml \
        --base-url https://compute.googleapis.com/compute/v1 --project p1 --token T

  - Certificates attached to the HTTPS proxy of a load balancer:
      python -m proxysync.cli certs-in-use --name web --project p1 --token T
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Iterable, Optional

from .core.compute_client import ComputeClient
from .core.config import AppConfig, ConfigError, load_config
from .core.converger import ProxyConverger
from .core.errors import NotFoundError, ProxySyncError
from .core.intents import IntentError, load_intent
from .core.logging_setup import build_logger
from .core.naming import ProxyNamer
from .core.operations import OperationConfig, OperationWaiter
from .core.proxies import DryRunAccessor, HttpProxyAccessor, ProxyAccessor

EXIT_OK = 0
EXIT_FAILED = 2
EXIT_CONFIG = 3


def _add_common_args(p: argparse.ArgumentParser) -> None:
    # API / HTTP (empty means: take it from file/env/defaults)
    p.add_argument("--base-url", default="", help="Resource API base URL")
    p.add_argument("--token", default="", help="API bearer token")
    p.add_argument("--project", default="", help="Project owning the proxies")
    p.add_argument("--verify-tls", default=None, choices=["true", "false"], help="Verify TLS (https)")
    p.add_argument("--timeout-sec", type=float, default=None, help="HTTP timeout seconds")
    p.add_argument("--retries", type=int, default=None, help="HTTP retries (5xx/network)")

    # Naming
    p.add_argument("--prefix", default=None, help="Resource name prefix")

    # Logging
    p.add_argument("--logs-dir", default=None, help="Logs base directory")
    p.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
    p.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="proxysync", description="Converge load-balancer target proxies")
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser("converge", help="Converge HTTP/HTTPS proxies toward an intent file")
    c.add_argument("--intent", required=True, help="Intent YAML file")
    c.add_argument("--dry-run", action="store_true", help="Read remote state, plan writes, issue none")
    _add_common_args(c)

    q = sub.add_parser("certs-in-use", help="List certificates attached to the HTTPS proxy")
    q.add_argument("--name", required=True, help="Load balancer name")
    _add_common_args(q)

    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Only flags the user actually set override lower layers."""
    api: Dict[str, Any] = {}
    for key in ("base_url", "token", "project"):
        if getattr(args, key):
            api[key] = getattr(args, key)
    if args.verify_tls is not None:
        api["verify_tls"] = args.verify_tls == "true"
    if args.timeout_sec is not None:
        api["timeout_sec"] = args.timeout_sec
    if args.retries is not None:
        api["retries"] = args.retries

    logging_cfg = {
        k: v for k, v in (
            ("base_dir", args.logs_dir),
            ("console_level", args.console_level),
            ("file_level", args.file_level),
        ) if v
    }

    out: Dict[str, Any] = {"api": api, "logging": logging_cfg}
    if args.prefix is not None:
        out["naming"] = {"prefix": args.prefix}
    if getattr(args, "dry_run", False):
        out["app"] = {"dry_run": True}
    return out


def _build_accessor(cfg: AppConfig, logger: logging.LoggerAdapter) -> ProxyAccessor:
    client = ComputeClient(
        base_url=cfg.api.base_url,
        token=cfg.api.token,
        verify_tls=cfg.api.verify_tls,
        timeout_sec=cfg.api.timeout_sec,
        retries=cfg.api.retries,
        backoff_base_sec=cfg.api.backoff_base_sec,
        logger=logger,
    )
    waiter: Optional[OperationWaiter] = None
    if cfg.operations.wait:
        waiter = OperationWaiter(
            client,
            OperationConfig(interval_sec=cfg.operations.interval_sec, timeout_sec=cfg.operations.timeout_sec),
            logger=logger,
        )
    accessor: ProxyAccessor = HttpProxyAccessor(client, cfg.api.project, operations=waiter, logger=logger)
    if cfg.app.dry_run:
        accessor = DryRunAccessor(accessor, logger=logger)
    return accessor


def _converge_cmd(args: argparse.Namespace) -> int:
    try:
        cfg = load_config(_cli_overrides(args))
        intent = load_intent(args.intent)
    except (ConfigError, IntentError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    logger = build_logger(
        run_id=cfg.run_id,
        action="converge",
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        extra={"lb": intent.name, "project": cfg.api.project},
    )
    logger.info("Starting proxysync converge (dry_run=%s)", cfg.app.dry_run)

    try:
        accessor = _build_accessor(cfg, logger)
        converger = ProxyConverger(accessor, ProxyNamer(cfg.naming.prefix), logger=logger)
        result = converger.reconcile(intent)
    except ProxySyncError as e:
        logger.error("Convergence of %s failed: %s", intent.name, e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except ValueError as e:
        logger.error("Invalid setup: %s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if isinstance(accessor, DryRunAccessor):
        for line in accessor.planned:
            print(f"plan: {line}")
    print(result.summary())
    return EXIT_OK


def _certs_in_use_cmd(args: argparse.Namespace) -> int:
    try:
        cfg = load_config(_cli_overrides(args))
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    logger = build_logger(
        run_id=cfg.run_id,
        action="certs-in-use",
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        extra={"lb": args.name, "project": cfg.api.project},
    )

    try:
        converger = ProxyConverger(_build_accessor(cfg, logger), ProxyNamer(cfg.naming.prefix), logger=logger)
        certs = converger.get_certificates_in_use(args.name)
    except NotFoundError as e:
        logger.warning("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except ProxySyncError as e:
        logger.error("Reading certificates of %s failed: %s", args.name, e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except ValueError as e:
        logger.error("Invalid setup: %s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    for cert in certs:
        print(cert)
    return EXIT_OK


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.cmd == "converge":
        return _converge_cmd(args)
    if args.cmd == "certs-in-use":
        return _certs_in_use_cmd(args)

    parser.error("Unknown command")  # pragma: no cover
    return 2  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
