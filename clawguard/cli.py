#!/usr/bin/env python3
"""
ClawGuard CLI

Command-line interface for the ClawGuard daemon, the approval hook used by
a coding assistant, and local sandbox/policy checks.
"""

import argparse
import asyncio
import json
import os
import sys

import httpx

from .client import DEFAULT_TIMEOUT_SECONDS, DEFAULT_URL, ApprovalClient
from .config.settings import GuardConfig
from .core.sandbox import is_command_allowed
from .service.policy import PolicyLoadError, evaluate_policy, load_policies


def get_url() -> str:
    return os.getenv("CLAWGUARD_URL", DEFAULT_URL)


def get_client() -> ApprovalClient:
    """Get approval API client."""
    return ApprovalClient(base_url=get_url())


def _not_running():
    print("❌ ClawGuard daemon not running")
    print(f"   Start with: clawguard serve (expected at {get_url()})")
    sys.exit(1)


def cmd_serve(args):
    """Run the daemon in the foreground."""
    from .main import run

    config = GuardConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    run(config)


def cmd_pending(args):
    """List pending approval requests."""
    try:
        with get_client() as client:
            requests = client.list_pending()
    except httpx.ConnectError:
        _not_running()

    if not requests:
        print("📭 No pending approvals")
        return

    print(f"📬 {len(requests)} Pending Approvals")
    print("=" * 60)
    for req in requests:
        print(f"\n🔶 {req['id']}")
        print(f"   Tool: {req['tool']}")
        print(f"   Input: {req['input']}")
        print(f"   Session: {req['session']}")
        print(f"   Requester: {req['requester']}")


def cmd_show(args):
    """Show one approval request."""
    try:
        with get_client() as client:
            record = client.get_status(args.request_id)
    except httpx.ConnectError:
        _not_running()

    if record is None:
        print(f"❌ Approval not found: {args.request_id}")
        sys.exit(1)
    print(json.dumps(record, indent=2))


def _cmd_decide(request_id: str, decision: str):
    try:
        with get_client() as client:
            result = client.decide(request_id, decision)
    except httpx.ConnectError:
        _not_running()

    if result is None:
        print(f"❌ Approval not found: {request_id}")
        sys.exit(1)
    if result["changed"]:
        print(f"✅ {decision}: {request_id}")
    else:
        print(f"⚠️ {request_id} already {result['status']}, nothing changed")


def cmd_allow(args):
    _cmd_decide(args.request_id, "allow")


def cmd_deny(args):
    _cmd_decide(args.request_id, "deny")


def cmd_hook(args):
    """
    Pre-tool hook for a coding assistant.

    Reads CLAUDE_TOOL, CLAUDE_INPUT and CLAUDE_SESSION, blocks until a human
    decides, and prints {"decision": "allow"|"deny"}. Fails closed: any error,
    including bad configuration, prints a deny decision.

    --timeout takes precedence over CLAWGUARD_APPROVAL_TIMEOUT.
    """
    decision = "deny"
    try:
        timeout = args.timeout
        if timeout is None:
            timeout = float(
                os.getenv("CLAWGUARD_APPROVAL_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
            )
        with get_client() as client:
            decision = client.gate(
                tool=os.getenv("CLAUDE_TOOL", "unknown"),
                input=os.getenv("CLAUDE_INPUT", ""),
                session=os.getenv("CLAUDE_SESSION", "unknown"),
                requester=args.requester,
                timeout=timeout,
                poll_interval=args.interval,
            )
    except Exception as e:
        print(f"clawguard hook failed, denying: {e!r}", file=sys.stderr)
        decision = "deny"
    print(json.dumps({"decision": decision}))


def cmd_check(args):
    """Check a command against the sandbox allowlist."""
    if is_command_allowed(args.program, args.args):
        print(f"✅ Allowed: {args.program} {' '.join(args.args)}")
    else:
        print(f"❌ Blocked: {args.program} {' '.join(args.args)}")
        sys.exit(1)


def cmd_policy(args):
    """Evaluate a tool against the configured policy file."""
    config = GuardConfig.from_env()
    try:
        policies = asyncio.run(load_policies(config.policy_file))
    except PolicyLoadError as e:
        print(f"❌ {e}")
        sys.exit(1)

    decision = evaluate_policy(policies, args.tool, args.channel, args.sender)
    print(f"📋 Policy: {config.policy_file} ({len(policies)} rules)")
    print(f"   {args.tool} on {args.channel} by {args.sender}: {decision.value}")


def main():
    parser = argparse.ArgumentParser(
        description="ClawGuard CLI - Tool authorization and approvals",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  clawguard serve                     Run the daemon
  clawguard pending                   List pending approvals
  clawguard show abc12345             Show an approval request
  clawguard allow abc12345            Allow a request
  clawguard deny abc12345             Deny a request
  clawguard hook                      Pre-tool hook (prints {"decision": ...})
  clawguard check ls -la              Test a command against the sandbox
  clawguard policy Bash telegram me   Evaluate a tool against policy
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the daemon")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Port")
    serve_parser.set_defaults(func=cmd_serve)

    pending_parser = subparsers.add_parser("pending", help="List pending approvals")
    pending_parser.set_defaults(func=cmd_pending)

    show_parser = subparsers.add_parser("show", help="Show an approval request")
    show_parser.add_argument("request_id")
    show_parser.set_defaults(func=cmd_show)

    allow_parser = subparsers.add_parser("allow", help="Allow a pending request")
    allow_parser.add_argument("request_id")
    allow_parser.set_defaults(func=cmd_allow)

    deny_parser = subparsers.add_parser("deny", help="Deny a pending request")
    deny_parser.add_argument("request_id")
    deny_parser.set_defaults(func=cmd_deny)

    hook_parser = subparsers.add_parser("hook", help="Pre-tool approval hook")
    hook_parser.add_argument("--requester", default="claude-code")
    hook_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds (default: CLAWGUARD_APPROVAL_TIMEOUT or 300)",
    )
    hook_parser.add_argument("--interval", type=float, default=1.0, help="Seconds")
    hook_parser.set_defaults(func=cmd_hook)

    check_parser = subparsers.add_parser("check", help="Test a command")
    check_parser.add_argument("program")
    check_parser.add_argument("args", nargs=argparse.REMAINDER)
    check_parser.set_defaults(func=cmd_check)

    policy_parser = subparsers.add_parser("policy", help="Evaluate tool policy")
    policy_parser.add_argument("tool")
    policy_parser.add_argument("channel")
    policy_parser.add_argument("sender")
    policy_parser.set_defaults(func=cmd_policy)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
