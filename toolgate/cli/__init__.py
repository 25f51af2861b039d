"""toolgate CLI.

Provides command-line access to the policy engine, including:
- Checking a tool call against a policy
- Listing rules in evaluation order
- Printing the canonical serialization used for argument patterns

Exit codes for ``check``: 0 allow, 1 deny, 2 ask_user. Any error exits 3.
"""

import argparse
import json
import logging
import sys

from .. import __version__

EXIT_ALLOW = 0
EXIT_DENY = 1
EXIT_ASK_USER = 2
EXIT_ERROR = 3

logger = logging.getLogger("toolgate.cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="toolgate",
        description="toolgate - policy decisions for AI agent tool calls",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check command
    check_parser = subparsers.add_parser(
        "check",
        help="Evaluate a tool call against the policy",
        description="Print the decision for a tool call and exit with its code",
    )
    check_parser.add_argument("tool", help="Tool name")
    check_parser.add_argument(
        "--args",
        dest="tool_args",
        default=None,
        help="Tool arguments as a JSON document",
    )
    check_parser.add_argument(
        "--policy",
        default=None,
        help="Policy YAML file (default: from settings and standard locations)",
    )
    check_parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Treat ask_user as deny",
    )

    # rules command
    rules_parser = subparsers.add_parser(
        "rules",
        help="List policy rules in evaluation order",
    )
    rules_parser.add_argument(
        "--policy",
        default=None,
        help="Policy YAML file (default: from settings and standard locations)",
    )
    rules_parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )

    # serialize command
    serialize_parser = subparsers.add_parser(
        "serialize",
        help="Print the canonical form of a JSON document",
        description="Show the string that args_pattern rules are matched against",
    )
    serialize_parser.add_argument("document", help="JSON document")

    return parser


def _load_engine(policy_path: str | None, non_interactive: bool = False):
    from ..config.settings import get_settings
    from ..policy import PolicyEngine, apply_settings_overrides, load_policy, load_policy_from_file

    settings = get_settings()
    if policy_path:
        config = apply_settings_overrides(load_policy_from_file(policy_path), settings)
    else:
        config = load_policy(settings)

    if non_interactive and not config.non_interactive:
        config = config.model_copy(update={"non_interactive": True})

    return PolicyEngine(config)


def run_check(args: argparse.Namespace) -> int:
    """Run the check command."""
    from ..policy import PolicyDecision, ToolCall

    tool_args = None
    if args.tool_args is not None:
        try:
            tool_args = json.loads(args.tool_args)
        except json.JSONDecodeError as e:
            print(f"Error: --args is not valid JSON: {e}", file=sys.stderr)
            return EXIT_ERROR

    engine = _load_engine(args.policy, non_interactive=args.non_interactive)
    decision = engine.check(ToolCall(name=args.tool, args=tool_args))
    print(decision.value)

    return {
        PolicyDecision.ALLOW: EXIT_ALLOW,
        PolicyDecision.DENY: EXIT_DENY,
        PolicyDecision.ASK_USER: EXIT_ASK_USER,
    }[decision]


def run_rules(args: argparse.Namespace) -> int:
    """Run the rules command."""
    engine = _load_engine(args.policy)
    rules = engine.get_rules()

    if args.json_output:
        data = {
            "default_decision": engine.default_decision.value,
            "non_interactive": engine.non_interactive,
            "rules": [r.model_dump(mode="json", exclude_none=True) for r in rules],
        }
        print(json.dumps(data, indent=2))
        return 0

    if not rules:
        print("No rules configured")
    for index, rule in enumerate(rules, start=1):
        print(f"{index:3d}. {rule.describe()}")
    print(f"Default: {engine.default_decision.value}")
    if engine.non_interactive:
        print("Non-interactive: ask_user is treated as deny")
    return 0


def run_serialize(args: argparse.Namespace) -> int:
    """Run the serialize command."""
    from ..policy import stable_stringify

    try:
        document = json.loads(args.document)
    except json.JSONDecodeError as e:
        print(f"Error: not valid JSON: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(stable_stringify(document))
    return 0


def _configure_logging() -> None:
    from ..config.settings import get_settings

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_ERROR

    try:
        _configure_logging()
        if args.command == "check":
            return run_check(args)
        elif args.command == "rules":
            return run_rules(args)
        elif args.command == "serialize":
            return run_serialize(args)
        else:
            parser.print_help()
            return EXIT_ERROR
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
