"""
Main Application Entry Point.

This module serves as the primary entry point for the repository provisioning
system. It exposes:
- validate_spec: check a candidate specification
- build_from_spec: materialize a scenario repository from a specification
- fork_with_history: derive an assessment repository from a scenario repository

The application can be run directly with one of the ``validate``, ``build``
or ``fork`` subcommands.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from config import settings, logger
from errors import ProvisioningError, SpecValidationError
from provisioning.fork import ForkOrchestrator
from provisioning.repo_builder import RepoBuilder
from specs.models import RepoSpec
from specs.validator import validate_spec
from storage.report_store import ReportStore
from store.github_store import GitHubWorkspace


def _workspace(credential: Optional[str]) -> GitHubWorkspace:
    return GitHubWorkspace(token=credential)


async def build_from_spec(
    scenario_id: str, spec: Any, credential: Optional[str] = None
) -> str:
    """
    Validate a specification and build its scenario repository.

    Args:
        scenario_id (str): Scenario id, names the repository
        spec (Any): RepoSpec, decoded dict or JSON text
        credential (Optional[str]): GitHub token, defaults to settings

    Returns:
        str: Repository URL

    Raises:
        SpecValidationError: If the specification is invalid
        ProvisioningError: If no usable repository could be built
    """
    repo_spec = spec if isinstance(spec, RepoSpec) else validate_spec(spec)
    workspace = _workspace(credential)
    workspace.check_rate_limit("build_from_spec start")

    builder = RepoBuilder(workspace, report_store=ReportStore(settings.data_dir))
    url = await builder.build_from_spec(scenario_id, repo_spec)

    workspace.check_rate_limit("build_from_spec end")
    return url


async def fork_with_history(
    assessment_id: str, source_repo_url: str, credential: Optional[str] = None
) -> str:
    """
    Create an assessment repository with the source's history and issues.

    Args:
        assessment_id (str): Assessment id, names the repository
        source_repo_url (str): Scenario template repository URL
        credential (Optional[str]): GitHub token, defaults to settings

    Returns:
        str: Repository URL
    """
    workspace = _workspace(credential)
    workspace.check_rate_limit("fork_with_history start")

    orchestrator = ForkOrchestrator(
        workspace, report_store=ReportStore(settings.data_dir)
    )
    url = await orchestrator.fork_with_history(assessment_id, source_repo_url)

    workspace.check_rate_limit("fork_with_history end")
    return url


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="repoforge",
        description="Provision synthetic GitHub repositories with history and issues.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a spec file")
    validate.add_argument("spec", type=Path, help="Path to a RepoSpec JSON file")

    build = subparsers.add_parser("build", help="Build a scenario repository")
    build.add_argument("scenario_id", help="Scenario id")
    build.add_argument("spec", type=Path, help="Path to a RepoSpec JSON file")

    fork = subparsers.add_parser("fork", help="Fork a repository with history")
    fork.add_argument("assessment_id", help="Assessment id")
    fork.add_argument("source_url", help="Scenario repository URL")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run a CLI command.

    Returns:
        int: Process exit code, 0 on success
    """
    args = _parse_args(argv)
    logger.info({"message": "Starting application", "command": args.command})

    try:
        if args.command == "validate":
            spec = validate_spec(args.spec.read_text(encoding="utf-8"))
            print(f"valid: {spec.project_name}")
        elif args.command == "build":
            spec_text = args.spec.read_text(encoding="utf-8")
            print(asyncio.run(build_from_spec(args.scenario_id, spec_text)))
        elif args.command == "fork":
            print(asyncio.run(fork_with_history(args.assessment_id, args.source_url)))
    except SpecValidationError as e:
        print(f"invalid spec: {e}", file=sys.stderr)
        return 1
    except ProvisioningError as e:
        print(f"provisioning failed: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"cannot read spec: {e}", file=sys.stderr)
        return 1

    logger.info({"message": "application finished", "command": args.command})
    return 0


if __name__ == "__main__":
    sys.exit(main())
