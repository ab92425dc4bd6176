from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from typing import Any, Sequence

from .categories import CATEGORY_VALUES
from .commands import CreatePostRequest, ResolvePostRequest
from .config import config_sha256, load_config, resolve_credentials, resolve_use_mock
from .config_schema import AppConfig
from .credentials import StaticCredentialProvider
from .errors import ConfigError
from .event_log import EventLog, EventLogger, NullEventLog
from .filters import FilterCoordinator
from .gateway import BackendGateway
from .normalize import post_to_dict
from .results import GatewayResult
from .store import PostStore

_LIST_SCOPE = "feed"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="civicmesh_sync")
    parser.add_argument("--config", help="Path to YAML config file (defaults apply when omitted).")
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the in-process mock backend regardless of configuration.",
    )
    parser.add_argument("--log", help="Append JSONL gateway events to this file.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    lst = subparsers.add_parser("list", help="List active posts, newest first.")
    lst.add_argument("--category", action="append", default=[], choices=CATEGORY_VALUES)
    lst.add_argument(
        "--subcategory",
        action="append",
        default=[],
        metavar="CATEGORY:SUBCATEGORY",
        help="Filter by subcategory id, e.g. help:food.",
    )
    lst.set_defaults(_handler=_cmd_list)

    show = subparsers.add_parser("show", help="Fetch a single post.")
    show.add_argument("post_id")
    show.set_defaults(_handler=_cmd_show)

    create = subparsers.add_parser("create", help="Create a post.")
    create.add_argument("--title", required=True)
    create.add_argument("--category", required=True, choices=CATEGORY_VALUES)
    create.add_argument("--subcategory")
    create.add_argument("--description", required=True)
    create.add_argument("--latitude", required=True, type=float)
    create.add_argument("--longitude", required=True, type=float)
    create.add_argument("--photo", required=True, help="Photo URI (file:// URIs are uploaded).")
    create.add_argument("--video")
    create.add_argument("--user")
    create.set_defaults(_handler=_cmd_create)

    omw = subparsers.add_parser("on-my-way", help="Mark yourself as on the way to help.")
    omw.add_argument("post_id")
    omw.add_argument("--user", required=True)
    omw.set_defaults(_handler=_cmd_on_my_way)

    resolve = subparsers.add_parser("resolve", help="Resolve a post with photo evidence.")
    resolve.add_argument("post_id")
    resolve.add_argument("--user", required=True)
    resolve.add_argument("--code", required=True)
    resolve.add_argument("--photo", required=True)
    resolve.add_argument("--video")
    resolve.set_defaults(_handler=_cmd_resolve)

    login = subparsers.add_parser("login", help="Acquire a session.")
    login.add_argument("--email", required=True)
    login.add_argument("--password", required=True)
    login.set_defaults(_handler=_cmd_login)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, sort_keys=True))


def _load(args: argparse.Namespace) -> AppConfig:
    return load_config(args.config) if args.config else AppConfig()


def _gateway(cfg: AppConfig, log: EventLogger, *, mock: bool) -> BackendGateway:
    if mock:
        return BackendGateway.from_config(cfg, logger=log, use_mock=True)
    if resolve_use_mock(cfg):
        return BackendGateway.from_config(cfg, logger=log)
    # Live mode needs credentials up front.
    creds = resolve_credentials(cfg)
    return BackendGateway.from_config(
        cfg, credentials=StaticCredentialProvider(creds), logger=log
    )


def _finish(result: GatewayResult[Any], render: Any) -> int:
    for warning in result.warnings:
        _eprint(f"warning: {warning}")
    if not result.ok:
        _eprint(result.error or "Request failed")
        return 3
    _print_json(render(result.data))
    return 0


def _cmd_list(args: argparse.Namespace, cfg: AppConfig, gateway: BackendGateway) -> int:
    store = PostStore(gateway)
    result = store.refresh(silent=True)
    if not result.ok:
        return _finish(result, None)

    filters = FilterCoordinator(cfg.filters.scopes)
    for category in args.category:
        filters.toggle_category(_LIST_SCOPE, category)
    for pair in args.subcategory:
        category, sep, sub_id = pair.partition(":")
        if not sep:
            raise ValueError(f"--subcategory expects CATEGORY:SUBCATEGORY, got {pair!r}")
        filters.toggle_subcategory(_LIST_SCOPE, category, sub_id)  # type: ignore[arg-type]

    _print_json([post_to_dict(p) for p in filters.apply(_LIST_SCOPE, store.posts)])
    return 0


def _cmd_show(args: argparse.Namespace, _cfg: AppConfig, gateway: BackendGateway) -> int:
    return _finish(gateway.fetch_post(args.post_id), post_to_dict)


def _cmd_create(args: argparse.Namespace, _cfg: AppConfig, gateway: BackendGateway) -> int:
    request = CreatePostRequest(
        title=args.title,
        category=args.category,
        subcategory=args.subcategory,
        description=args.description,
        latitude=args.latitude,
        longitude=args.longitude,
        photo_uri=args.photo,
        video_uri=args.video,
        user_id=args.user,
    )
    return _finish(gateway.create_post(request), post_to_dict)


def _cmd_on_my_way(args: argparse.Namespace, _cfg: AppConfig, gateway: BackendGateway) -> int:
    return _finish(gateway.mark_on_my_way(args.post_id, args.user), post_to_dict)


def _cmd_resolve(args: argparse.Namespace, _cfg: AppConfig, gateway: BackendGateway) -> int:
    request = ResolvePostRequest(
        post_id=args.post_id,
        user_id=args.user,
        resolution_code=args.code,
        resolution_photo_uri=args.photo,
        resolution_video_uri=args.video,
    )
    return _finish(gateway.resolve_post(request), post_to_dict)


def _cmd_login(args: argparse.Namespace, _cfg: AppConfig, gateway: BackendGateway) -> int:
    return _finish(gateway.login(args.email, args.password), asdict)


def _run(args: argparse.Namespace, log: EventLogger) -> int:
    cfg = _load(args)
    log.info("config_loaded", config_path=args.config, config_sha256=config_sha256(cfg))
    gateway = _gateway(cfg, log, mock=bool(args.mock))
    handler = getattr(args, "_handler")
    return int(handler(args, cfg, gateway))


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        if args.log:
            with EventLog.open(args.log) as log:
                log.info("command_started", command=args.command)
                try:
                    return _run(args, log)
                except Exception as e:
                    log.exception("command_failed", exc=e, command=args.command)
                    raise
        return _run(args, NullEventLog())
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except ValueError as e:
        _eprint(str(e))
        return 2
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
