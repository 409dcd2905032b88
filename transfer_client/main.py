from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .api.json_api import JsonAPI
from .errors import ConfigError, FilesystemError, TransferError
from .models import ArchiveFormat, ClientConfig, CustomRootCertificate, InsecureSkipVerify, SystemDefault
from .transfers.downloader import Downloader
from .transfers.uploader import Uploader
from .utils.file_utils import read_file_bytes
from .utils.http_client import TransferClient

load_dotenv()


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_float(name: str) -> float | None:
    value = _env_str(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _env_bool(name: str) -> bool:
    value = _env_str(name)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str] | None:
    raw = _env_str(name)
    if not raw:
        return None
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or None


def _parse_header(value: str) -> tuple[str, str]:
    name, sep, content = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Header must look like 'Name: value', got {value!r}")
    return name.strip(), content.strip()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transfer files over HTTP(S) with a configurable trust policy.")
    parser.add_argument("--base-url", default=_env_str("TRANSFER_BASE_URL"), help="Base address requests are resolved against")
    parser.add_argument(
        "--insecure",
        action="store_true",
        default=_env_bool("TRANSFER_INSECURE"),
        help="Accept any server certificate (disables TLS verification)",
    )
    parser.add_argument("--ca-cert", default=_env_str("TRANSFER_CA_CERT"), help="PEM file holding the only trusted root certificate(s)")
    parser.add_argument(
        "--header",
        dest="headers",
        action="append",
        type=_parse_header,
        default=[_parse_header(item) for item in _env_list("TRANSFER_HEADERS") or []],
        help="Default header 'Name: value' (repeatable)",
    )
    parser.add_argument("--timeout", type=float, default=_env_float("TRANSFER_TIMEOUT"), help="Total seconds allowed per request")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    request_parser = subparsers.add_parser("request", help="Send a JSON request and print the decoded response")
    request_parser.add_argument("method", choices=["GET", "POST", "PUT", "PATCH", "DELETE"], type=str.upper)
    request_parser.add_argument("endpoint")
    request_parser.add_argument("--json", dest="json_body", help="JSON body to send")

    download_parser = subparsers.add_parser("download", help="Download a URL to a file")
    download_parser.add_argument("url")
    download_parser.add_argument("dest")

    upload_parser = subparsers.add_parser("upload", help="Upload a file or folder as multipart form data")
    upload_parser.add_argument("url")
    upload_parser.add_argument("path")
    upload_parser.add_argument("--zip", action="store_true", help="Stage the file or folder as a zip first")
    upload_parser.add_argument("--field", default="file", help="Multipart field name")

    extract_parser = subparsers.add_parser("extract", help="Download an archive and extract it into a directory")
    extract_parser.add_argument("url")
    extract_parser.add_argument("dest")
    extract_parser.add_argument("--format", dest="archive_format", required=True, choices=[item.value for item in ArchiveFormat])

    return parser.parse_args(argv)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def build_config(args: argparse.Namespace) -> ClientConfig:
    if args.insecure and args.ca_cert:
        raise ConfigError("--insecure and --ca-cert are mutually exclusive")

    if args.insecure:
        policy = InsecureSkipVerify()
    elif args.ca_cert:
        try:
            policy = CustomRootCertificate(pem=read_file_bytes(args.ca_cert))
        except FilesystemError as exc:
            raise ConfigError(f"Cannot read CA certificate: {exc}") from exc
    else:
        policy = SystemDefault()

    base_url = args.base_url or getattr(args, "url", None)
    if not base_url:
        raise ConfigError("A base URL is required (--base-url or TRANSFER_BASE_URL)")
    return ClientConfig(
        base_url=base_url,
        trust_policy=policy,
        default_headers=tuple(args.headers),
        timeout=args.timeout,
    )


async def run_command(args: argparse.Namespace, config: ClientConfig) -> None:
    async with TransferClient(config) as client:
        if args.command == "request":
            body = json.loads(args.json_body) if args.json_body else None
            result = await JsonAPI(client).call(args.method, args.endpoint, body)
            print(json.dumps(result, ensure_ascii=False, indent=2))
        elif args.command == "download":
            await Downloader(client).fetch_to_path(args.url, args.dest)
        elif args.command == "upload":
            uploader = Uploader(client)
            source = Path(args.path)
            if source.is_dir():
                await uploader.upload_folder_as_zip(args.url, source, args.field)
            elif args.zip:
                await uploader.upload_file_as_zip(args.url, source, args.field)
            else:
                await uploader.upload_file(args.url, source, args.field)
            logging.info("Uploaded %s to %s", source, args.url)
        elif args.command == "extract":
            result = await Downloader(client).fetch_archive_to_dir(args.url, ArchiveFormat(args.archive_format), args.dest)
            for name in result.files:
                print(name)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    try:
        config = build_config(args)
        asyncio.run(run_command(args, config))
    except json.JSONDecodeError as exc:
        logging.error("--json is not valid JSON: %s", exc)
        return 1
    except TransferError as exc:
        logging.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
