"""
docdetect command line.

    docdetect classify message.json --policy resume --attachments-dir ./files
    docdetect policies

The message file holds the email metadata and its attachments:

    {"from": "jane.doe@gmail.com", "subject": "...",
     "attachments": [{"id": "a1", "filename": "cv.pdf",
                      "mime_type": "application/pdf", "size_bytes": 250000}]}

The summary is printed to stdout as JSON; logs go to stderr and the log file.
"""

import argparse
import json
import sys
from typing import List, Optional

from .__version__ import __version__
from .core import (
    AttachmentMetadata,
    ConfigurationError,
    DetectionOrchestrator,
    DirectoryContentLoader,
    EmailContext,
)
from .core.policy import POLICIES
from .providers import ProviderFactory
from .utils.config import build_policy, get_pipeline_config, get_provider_config, load_config
from .utils.logger import logger


def read_message(path: str):
    """
    Parse a message JSON file into an EmailContext and its attachments.

    Raises:
        ConfigurationError: The file is unreadable or not a JSON object
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read message file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Message file {path} must contain a JSON object")

    attachments = [AttachmentMetadata.from_dict(a) for a in data.get("attachments", [])]
    data.setdefault("attachment_count", len(attachments))
    return EmailContext.from_dict(data), attachments


def cmd_classify(args) -> int:
    cfg = load_config(args.config)
    policy = build_policy(args.policy, cfg)
    email, attachments = read_message(args.message)

    provider_name = args.provider or cfg.get("provider", "ollama")
    provider = ProviderFactory.create(provider_name, get_provider_config(provider_name, cfg))

    orchestrator = DetectionOrchestrator(get_pipeline_config(cfg))
    summary = orchestrator.run_sync(
        email,
        attachments,
        content_loader=DirectoryContentLoader(args.attachments_dir),
        ai_caller=provider,
        policy=policy,
    )
    json.dump(summary.to_dict(), sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0 if summary.detected else 1


def cmd_policies(args) -> int:
    for name, policy in sorted(POLICIES.items()):
        sys.stdout.write(f"{name}\t{policy.description}\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docdetect",
        description="Detect résumés or job descriptions among email attachments.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    classify = sub.add_parser("classify", help="Classify the attachments of one email")
    classify.add_argument("message", help="Path to the message JSON file")
    classify.add_argument("--policy", default="resume", help="resume or job_description")
    classify.add_argument(
        "--attachments-dir", required=True, help="Directory holding the attachment files"
    )
    classify.add_argument("--config", help="Configuration file (else DOCDETECT_CONFIG)")
    classify.add_argument("--provider", help="Override the configured provider")
    classify.set_defaults(func=cmd_classify)

    policies = sub.add_parser("policies", help="List built-in policies")
    policies.set_defaults(func=cmd_policies)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the `docdetect` console script.

    Exit codes: 0 detected (or listing), 1 nothing detected, 2 configuration error.
    """
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
