"""Command line tool to create versions and update release notes on the app stores."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from release_errors import ConfigError, ReleaseToolError
from store import Store, StoreSettings, create_store
from store_config import GOOGLE_PLAY_TRACKS, AppStoreSettings, GooglePlaySettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


class DailyLogFileHandler(logging.FileHandler):
    """Appends to ``release_YYYY-MM-DD.log`` for the day the run started."""

    def __init__(self, directory: Path, encoding: str = "utf-8"):
        directory.mkdir(parents=True, exist_ok=True)
        self.directory = directory
        log_path = directory / f"release_{date.today().strftime('%Y-%m-%d')}.log"
        super().__init__(log_path, mode="a", encoding=encoding, delay=True)


def configure_logging() -> None:
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level_name, logging.INFO))
    root_logger.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        file_handler = DailyLogFileHandler(Path(log_dir))
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # googleapiclient logs every discovery lookup at INFO
    logging.getLogger("googleapiclient.discovery").setLevel(logging.WARNING)


def _common_options() -> argparse.ArgumentParser:
    # SUPPRESS keeps a nested parser from resetting a value given at an outer level.
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--machine",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Prints the output in a machine-readable format",
    )
    return parent


def _ios_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--app-id", default=argparse.SUPPRESS, help="The App Store Connect app ID"
    )
    parent.add_argument(
        "--key-path",
        metavar="FILE",
        default=argparse.SUPPRESS,
        help="The key path, must be an AuthKey_{ID}.p8 file",
    )
    parent.add_argument(
        "--issuer-id", default=argparse.SUPPRESS, help="The issuer id, must be a valid UUID"
    )
    return parent


def _android_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--package-name",
        metavar="com.example.app",
        default=argparse.SUPPRESS,
        help="The package name",
    )
    parent.add_argument(
        "--key-path",
        metavar="FILE",
        default=argparse.SUPPRESS,
        help="The key path, must be a service account .json file",
    )
    parent.add_argument(
        "--track",
        choices=GOOGLE_PLAY_TRACKS,
        default=argparse.SUPPRESS,
        help="The Google Play track",
    )
    return parent


def _add_version_commands(platform_parser: argparse.ArgumentParser, parents) -> None:
    commands = platform_parser.add_subparsers(dest="command", required=True)
    version = commands.add_parser("version", parents=parents, help="Manage versions")
    actions = version.add_subparsers(dest="action", required=True)

    create = actions.add_parser("create", parents=parents, help="Creates a new version")
    create.add_argument("name", help="The name of the version to be created")

    notes = actions.add_parser("notes", parents=parents, help="Updates the release notes")
    notes.add_argument("-m", "--message", required=True, help="The message")
    notes.add_argument(
        "-l",
        "--language",
        required=True,
        help="The language of the release notes (empty matches the only localization on iOS)",
    )
    notes.add_argument(
        "-n", "--name", required=True, help="The version name to update"
    )


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="store-release",
        description="Manage app releases on App Store Connect and Google Play.",
        parents=[common],
    )
    platforms = parser.add_subparsers(dest="platform", required=True)

    ios_parents = [common, _ios_options()]
    ios = platforms.add_parser("ios", parents=ios_parents, help="App Store Connect")
    _add_version_commands(ios, ios_parents)

    android_parents = [common, _android_options()]
    android = platforms.add_parser("android", parents=android_parents, help="Google Play")
    _add_version_commands(android, android_parents)
    return parser


def settings_from_args(args: argparse.Namespace) -> StoreSettings:
    if args.platform == "ios":
        return AppStoreSettings.resolve(
            key_path=getattr(args, "key_path", None),
            issuer_id=getattr(args, "issuer_id", None),
            app_id=getattr(args, "app_id", None),
        )
    if args.platform == "android":
        return GooglePlaySettings.resolve(
            key_path=getattr(args, "key_path", None),
            package_name=getattr(args, "package_name", None),
            track=getattr(args, "track", None),
        )
    raise ConfigError(f"지원하지 않는 플랫폼입니다: {args.platform}")


def run_command(store: Store, args: argparse.Namespace) -> Dict[str, Any]:
    if args.action == "create":
        store.create_version(args.name)
        return {"action": "create", "version": args.name}
    if args.action == "notes":
        store.set_notes(args.language, args.name, args.message)
        return {"action": "notes", "version": args.name, "language": args.language}
    raise ConfigError(f"지원하지 않는 명령입니다: {args.action}")


def _print_success(result: Dict[str, Any], platform: str, machine: bool) -> None:
    if machine:
        print(json.dumps({"status": "ok", "platform": platform, **result}, ensure_ascii=False))
        return
    if result["action"] == "create":
        print(f"{platform}: 버전 {result['version']}을(를) 생성했습니다.")
    else:
        print(
            f"{platform}: 버전 {result['version']}의 릴리스 노트({result['language'] or '기본'})를 업데이트했습니다."
        )


def _print_error(exc: ReleaseToolError, machine: bool) -> None:
    if machine:
        payload = {
            "status": "error",
            "error": type(exc).__name__,
            "step": exc.step,
            "message": exc.message,
        }
        print(json.dumps(payload, ensure_ascii=False))
        return
    print(f"오류: {exc}", file=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    configure_logging()

    args = build_parser().parse_args(argv)
    machine = getattr(args, "machine", False)

    try:
        settings = settings_from_args(args)
        store = create_store(settings)
        result = run_command(store, args)
    except ReleaseToolError as exc:
        logger.debug("Command failed", exc_info=True)
        _print_error(exc, machine)
        return 1

    _print_success(result, settings.platform, machine)
    return 0


if __name__ == "__main__":  # pragma: no mutate - CLI entry point
    raise SystemExit(main())
